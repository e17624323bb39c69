"""
Tests for auth, homework and gallery services
"""
import base64

import pytest

from portal.cache import GALLERY, HOMEWORK
from portal.errors import AccessDeniedError, RemoteUnavailableError, ValidationError
from portal.pending import PendingChange
from portal.services import AuthService, GalleryService, HomeworkService
from portal.services.gallery import MAX_IMAGE_BYTES, parse_data_url
from portal.services.homework import plain_text

from conftest import CLASS_NAME, ELDER_USER, STUDENT_USER

PNG_URL = 'data:image/png;base64,' + base64.b64encode(b'\x89PNG fake image').decode()


@pytest.fixture
def auth(store, credentials, reconciler):
    return AuthService(store, credentials, reconciler, default_admin_class=CLASS_NAME)


@pytest.fixture
def homework(store, cache, queue):
    return HomeworkService(store, cache, queue)


@pytest.fixture
def gallery(store, cache, queue):
    return GalleryService(store, cache, queue)


class TestCheckAccessKey:
    """Test access key validation"""

    def test_class_user(self, auth):
        user = auth.check_access_key(CLASS_NAME, 'elder', 'elder-key')

        assert user['user_type'] == 'class'
        assert user['class'] == CLASS_NAME
        assert user['type'] == 'elder'
        assert user['key'] == 'elder-key'

    def test_admin_key_works_for_any_role(self, auth):
        user = auth.check_access_key(CLASS_NAME, 'student', 'adm-key')

        assert user['user_type'] == 'admin'
        assert user['type'] == 'admin'
        assert user['class'] == CLASS_NAME

    def test_missing_key(self, auth):
        with pytest.raises(ValidationError):
            auth.check_access_key(CLASS_NAME, 'elder', '  ')

    def test_missing_class_or_role(self, auth):
        with pytest.raises(ValidationError):
            auth.check_access_key(None, 'elder', 'elder-key')
        with pytest.raises(ValidationError):
            auth.check_access_key(CLASS_NAME, '', 'elder-key')

    def test_unknown_key(self, auth):
        with pytest.raises(AccessDeniedError):
            auth.check_access_key(CLASS_NAME, 'elder', 'nobody')

    def test_key_from_other_class(self, auth):
        with pytest.raises(AccessDeniedError):
            auth.check_access_key('10-A', 'elder', 'elder-key')

    def test_role_mismatch(self, auth):
        with pytest.raises(AccessDeniedError, match='Class monitor'):
            auth.check_access_key(CLASS_NAME, 'elder', 'student-key')

    def test_blocked_keys(self, auth):
        with pytest.raises(AccessDeniedError):
            auth.check_access_key(CLASS_NAME, 'elder', 'blocked-key')
        with pytest.raises(AccessDeniedError):
            auth.check_access_key(CLASS_NAME, 'admin', 'adm-blocked')

    def test_path_characters_rejected(self, auth):
        with pytest.raises(AccessDeniedError):
            auth.check_access_key(CLASS_NAME, 'elder', '../administration')

    def test_offline(self, auth, store):
        store.set_offline()

        with pytest.raises(RemoteUnavailableError):
            auth.check_access_key(CLASS_NAME, 'elder', 'elder-key')

    def test_success_remembers_credentials(self, auth, credentials):
        auth.check_access_key(CLASS_NAME, 'elder', 'elder-key')

        assert credentials.load() == {'key': 'elder-key', 'class_name': CLASS_NAME, 'role': 'elder'}

    def test_failure_does_not_remember(self, auth, credentials):
        with pytest.raises(AccessDeniedError):
            auth.check_access_key(CLASS_NAME, 'elder', 'nobody')

        assert credentials.load() is None


class TestLogin:
    """Test login followed by reconciliation"""

    def test_login_syncs_pending_changes(self, auth, queue, store):
        queue.enqueue(PendingChange('homework', CLASS_NAME, data='offline edit'))

        user, result = auth.login(CLASS_NAME, 'elder', 'elder-key')

        assert result.synced == 1
        assert len(queue) == 0
        assert store.get(f'classes/{CLASS_NAME}/homework') == 'offline edit'

    def test_quick_login(self, auth):
        auth.login(CLASS_NAME, 'elder', 'elder-key')

        user, _ = auth.quick_login()

        assert user['key'] == 'elder-key'

    def test_quick_login_without_saved_credentials(self, auth):
        with pytest.raises(ValidationError):
            auth.quick_login()

    def test_logout_can_forget(self, auth, credentials):
        auth.login(CLASS_NAME, 'elder', 'elder-key')

        auth.logout()
        assert credentials.load() is not None

        auth.logout(forget=True)
        assert credentials.load() is None


class TestHomework:
    """Test optimistic homework saves"""

    def test_plain_text(self):
        assert plain_text('<p>Read&nbsp;<b>page 4</b></p>') == 'Read page 4'

    def test_save_online(self, homework, store, cache, queue):
        assert homework.save(ELDER_USER, CLASS_NAME, '<p>Page 4</p>') is True

        assert store.get(f'classes/{CLASS_NAME}/homework') == '<p>Page 4</p>'
        assert store.get(f'classes/{CLASS_NAME}/_editedBy') == 'elder-key'
        assert cache.get(CLASS_NAME, HOMEWORK)['homework'] == '<p>Page 4</p>'
        assert len(queue) == 0

    def test_save_offline_queues_change(self, homework, store, cache, queue):
        store.set_offline()

        assert homework.save(ELDER_USER, CLASS_NAME, '<p>Page 5</p>') is False

        assert cache.get(CLASS_NAME, HOMEWORK)['homework'] == '<p>Page 5</p>'
        [change] = queue.list()
        assert change.type == 'homework'
        assert change.class_name == CLASS_NAME
        assert change.data == '<p>Page 5</p>'

    def test_student_cannot_save(self, homework, queue):
        with pytest.raises(AccessDeniedError):
            homework.save(STUDENT_USER, CLASS_NAME, '<p>No</p>')

        assert len(queue) == 0

    def test_empty_content_rejected(self, homework, queue):
        for content in ('', '<p> </p>', '<p>Enter homework here...</p>'):
            with pytest.raises(ValidationError):
                homework.save(ELDER_USER, CLASS_NAME, content)

        assert len(queue) == 0

    def test_load_refreshes_cache(self, homework, cache):
        record, from_cache = homework.load(CLASS_NAME)

        assert from_cache is False
        assert record['homework'] == '<p>Read chapter 1</p>'
        assert cache.get(CLASS_NAME, HOMEWORK)['homework'] == '<p>Read chapter 1</p>'

    def test_load_offline_uses_cache(self, homework, store, cache):
        cache.save(CLASS_NAME, HOMEWORK, {'homework': 'cached'})
        store.set_offline()

        record, from_cache = homework.load(CLASS_NAME)

        assert from_cache is True
        assert record == {'homework': 'cached'}

    def test_subscribe_caches_remote_changes(self, homework, store, cache):
        seen = []
        unsubscribe = homework.subscribe(CLASS_NAME, seen.append)

        store.update(f'classes/{CLASS_NAME}', {'homework': 'from another device'})
        unsubscribe()

        assert seen[-1]['homework'] == 'from another device'
        assert cache.get(CLASS_NAME, HOMEWORK)['homework'] == 'from another device'


class TestGallery:
    """Test optimistic gallery writes"""

    def test_parse_data_url(self):
        mime, size = parse_data_url(PNG_URL)

        assert mime == 'image/png'
        assert size == len(b'\x89PNG fake image')

    def test_non_image_rejected(self):
        url = 'data:text/plain;base64,' + base64.b64encode(b'hello').decode()

        with pytest.raises(ValidationError):
            parse_data_url(url)

    def test_oversized_image_rejected(self):
        url = 'data:image/png;base64,' + base64.b64encode(b'0' * (MAX_IMAGE_BYTES + 1)).decode()

        with pytest.raises(ValidationError):
            parse_data_url(url)

    def test_invalid_payload_rejected(self):
        with pytest.raises(ValidationError):
            parse_data_url('data:image/png;base64,***')
        with pytest.raises(ValidationError):
            parse_data_url('not a data url')

    def test_upload_online(self, gallery, store, cache, queue):
        entry, reached = gallery.upload(ELDER_USER, CLASS_NAME, PNG_URL, 'board.png')

        assert reached is True
        assert entry['fileName'].startswith('img_')
        assert entry['originalName'] == 'board.png'
        assert entry['uploadedBy'] == 'elder-key'
        assert entry['type'] == 'base64'
        assert store.get(f'classes/{CLASS_NAME}/gallery/{entry["fileName"]}') == entry
        assert cache.get(CLASS_NAME, GALLERY)[entry['fileName']] == entry
        assert len(queue) == 0

    def test_upload_offline_queues_change(self, gallery, store, cache, queue):
        store.set_offline()

        entry, reached = gallery.upload(ELDER_USER, CLASS_NAME, PNG_URL)

        assert reached is False
        assert entry['originalName'] == 'Image'
        [change] = queue.list()
        assert change.type == 'gallery'
        assert change.file_name == entry['fileName']
        assert change.data == entry

    def test_offline_upload_synced_later(self, gallery, store, queue, reconciler):
        store.set_offline()
        entry, _ = gallery.upload(ELDER_USER, CLASS_NAME, PNG_URL)
        store.set_offline(False)

        reconciler.sync_pending_changes()

        assert store.get(f'classes/{CLASS_NAME}/gallery/{entry["fileName"]}') == entry

    def test_student_cannot_upload(self, gallery):
        with pytest.raises(AccessDeniedError):
            gallery.upload(STUDENT_USER, CLASS_NAME, PNG_URL)

    def test_delete_online(self, gallery, store, cache, queue):
        entry, _ = gallery.upload(ELDER_USER, CLASS_NAME, PNG_URL)

        assert gallery.delete(ELDER_USER, CLASS_NAME, entry['fileName']) is True

        assert store.get(f'classes/{CLASS_NAME}/gallery') is None
        assert cache.get(CLASS_NAME, GALLERY) == {}
        assert len(queue) == 0

    def test_delete_offline_queues_change(self, gallery, store, queue):
        entry, _ = gallery.upload(ELDER_USER, CLASS_NAME, PNG_URL)
        store.set_offline()

        assert gallery.delete(ELDER_USER, CLASS_NAME, entry['fileName']) is False

        [change] = queue.list()
        assert change.type == 'delete_image'
        assert change.file_name == entry['fileName']

    def test_load_sorted_newest_first(self, gallery, store):
        store.set(f'classes/{CLASS_NAME}/gallery', {
            'img_a': {'url': 'a', 'timestamp': 1},
            'img_b': {'url': 'b', 'timestamp': 3},
            'img_c': {'url': 'c', 'timestamp': 2},
        })

        images, from_cache = gallery.load(CLASS_NAME)

        assert from_cache is False
        assert [i['fileName'] for i in images] == ['img_b', 'img_c', 'img_a']

    def test_load_offline_uses_cache(self, gallery, store, cache):
        cache.save(CLASS_NAME, GALLERY, {'img_a': {'url': 'a', 'timestamp': 1}})
        store.set_offline()

        images, from_cache = gallery.load(CLASS_NAME)

        assert from_cache is True
        assert images[0]['url'] == 'a'

    def test_subscribe_caches_remote_changes(self, gallery, store, cache):
        seen = []
        gallery.subscribe(CLASS_NAME, seen.append)

        store.set(f'classes/{CLASS_NAME}/gallery/img_x', {'url': 'x', 'timestamp': 5})

        assert seen[-1][0]['fileName'] == 'img_x'
        assert cache.get(CLASS_NAME, GALLERY) == {'img_x': {'url': 'x', 'timestamp': 5}}

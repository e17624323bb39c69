import base64

from flask import Blueprint, render_template, redirect, url_for, jsonify, request, flash

from portal.context import get_portal
from portal.decorators import auth_required, editor_required, get_current_user
from portal.errors import ValidationError
from portal.forms import ConfirmForm, HomeworkForm, ImageUploadForm
from portal.logging import get_logger

logger = get_logger(__name__)

bp = Blueprint('main', __name__)

OFFLINE_NOTICE = 'Saved locally (offline). It will be sent on the next login.'


@bp.route('/health')
def health():
    portal = get_portal()
    return jsonify({
        'status': 'ok',
        'online': portal.store.check_connection(),
        'pending': len(portal.queue),
        'activeEvent': portal.events.active.name if portal.events.active else None,
    }), 200


@bp.route('/')
def index():
    user = get_current_user()
    if user.is_authenticated:
        return redirect(url_for('main.dashboard'))
    return redirect(url_for('auth.select_class'))


@bp.route('/dashboard')
@auth_required
def dashboard():
    user = get_current_user()
    portal = get_portal()
    class_name = user.class_name

    homework, homework_cached = portal.homework.load(class_name)
    images, gallery_cached = portal.gallery.load(class_name)
    if homework_cached or gallery_cached:
        flash('Showing saved data; the server is not reachable.', 'warning')

    homework_form = HomeworkForm()
    if homework:
        homework_form.content.data = homework.get('homework')

    return render_template('main/dashboard.html',
                           class_name=class_name,
                           homework=homework,
                           images=images,
                           homework_form=homework_form,
                           upload_form=ImageUploadForm(),
                           confirm_form=ConfirmForm(),
                           pending=portal.queue.list(),
                           cache_size=portal.cache.size_estimate(),
                           events=portal.events.status())


@bp.route('/homework', methods=['POST'])
@editor_required
def save_homework():
    user = get_current_user()
    form = HomeworkForm()
    if not form.validate_on_submit():
        flash('Enter the homework first.', 'danger')
        return redirect(url_for('main.dashboard'))

    try:
        reached = get_portal().homework.save(user, user.class_name, form.content.data)
    except ValidationError as e:
        flash(str(e), 'danger')
        return redirect(url_for('main.dashboard'))

    if reached:
        flash('Homework saved.', 'success')
    else:
        flash(OFFLINE_NOTICE, 'info')
    return redirect(url_for('main.dashboard'))


@bp.route('/gallery/upload', methods=['POST'])
@editor_required
def upload_image():
    user = get_current_user()
    form = ImageUploadForm()
    if not form.validate_on_submit():
        for errors in form.errors.values():
            for error in errors:
                flash(error, 'danger')
        return redirect(url_for('main.dashboard'))

    upload = form.image.data
    payload = base64.b64encode(upload.read()).decode('ascii')
    data_url = f'data:{upload.mimetype or "application/octet-stream"};base64,{payload}'

    try:
        _, reached = get_portal().gallery.upload(
            user, user.class_name, data_url, form.title.data or upload.filename)
    except ValidationError as e:
        flash(str(e), 'danger')
        return redirect(url_for('main.dashboard'))

    flash('Image uploaded.' if reached else OFFLINE_NOTICE, 'success' if reached else 'info')
    return redirect(url_for('main.dashboard'))


@bp.route('/gallery/<image_id>/delete', methods=['POST'])
@editor_required
def delete_image(image_id):
    user = get_current_user()
    form = ConfirmForm()
    if not form.validate_on_submit():
        return redirect(url_for('main.dashboard'))

    try:
        reached = get_portal().gallery.delete(user, user.class_name, image_id)
    except ValidationError as e:
        flash(str(e), 'danger')
        return redirect(url_for('main.dashboard'))

    flash('Image deleted.' if reached else OFFLINE_NOTICE, 'success' if reached else 'info')
    return redirect(url_for('main.dashboard'))


@bp.route('/pending')
@auth_required
def pending_changes():
    portal = get_portal()
    return jsonify({
        'count': len(portal.queue),
        'changes': [
            {k: v for k, v in change.to_dict().items() if k != 'data'}
            for change in portal.queue.list()
        ],
        'cacheSize': portal.cache.size_estimate(),
    })


@bp.route('/pending/sync', methods=['POST'])
@auth_required
def sync_pending():
    result = get_portal().reconciler.sync_pending_changes()
    return jsonify({
        'success': result.failed == 0,
        'synced': result.synced,
        'failed': result.failed,
        'remaining': len(get_portal().queue),
    })


@bp.route('/pending/discard', methods=['POST'])
@editor_required
def discard_pending():
    portal = get_portal()
    change_id = request.form.get('change_id') or (request.get_json(silent=True) or {}).get('id')
    if change_id:
        removed = portal.queue.remove(change_id)
    else:
        removed = len(portal.queue)
        portal.queue.clear()
    logger.info('pending_discarded', change_id=change_id, removed=removed)
    if request.is_json:
        return jsonify({'success': bool(removed), 'remaining': len(portal.queue)})
    flash('Pending changes discarded.', 'info')
    return redirect(url_for('main.dashboard'))


@bp.route('/cache/clear', methods=['POST'])
@auth_required
def clear_cache():
    portal = get_portal()
    portal.cache.clear_all()
    if request.is_json:
        return jsonify({'success': True, 'cacheSize': portal.cache.size_estimate()})
    flash('Local cache cleared.', 'info')
    return redirect(url_for('main.dashboard'))

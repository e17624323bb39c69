from flask import (Blueprint, render_template, redirect, url_for, flash,
                   request, session, current_app)
from urllib.parse import urlparse

from portal.context import get_portal
from portal.decorators import get_current_user, login_user, logout_user
from portal.errors import RemoteUnavailableError, ValidationError
from portal.forms import AccessKeyForm, ConfirmForm, RoleForm
from portal.logging import get_logger

logger = get_logger(__name__)

bp = Blueprint('auth', __name__, url_prefix='/auth')

SELECTED_CLASS = 'selected_class'
SELECTED_ROLE = 'selected_role'


def is_safe_url(target):
    if not target:
        return False
    ref_url = urlparse(request.host_url)
    test_url = urlparse(target)
    return test_url.scheme in ('', 'http', 'https') and ref_url.netloc == test_url.netloc


def _finish_login(user, result):
    login_user(user)
    session.pop(SELECTED_CLASS, None)
    session.pop(SELECTED_ROLE, None)
    flash('Logged in successfully!', 'success')
    if result is not None and result.attempted:
        if result.failed:
            flash(f'Synced {result.synced} change(s); {result.failed} still waiting for the server.', 'warning')
        else:
            flash(f'Synced {result.synced} offline change(s).', 'info')

    next_page = request.args.get('next')
    if is_safe_url(next_page):
        return redirect(next_page)
    return redirect(url_for('main.dashboard'))


@bp.route('/')
def select_class():
    if get_current_user().is_authenticated:
        return redirect(url_for('main.dashboard'))
    portal = get_portal()
    return render_template('auth/select_class.html',
                           classes=current_app.config['PORTAL_CLASSES'],
                           saved=portal.credentials.load(),
                           form=ConfirmForm())


@bp.route('/class/<class_name>')
def choose_class(class_name):
    if class_name not in current_app.config['PORTAL_CLASSES']:
        flash('Unknown class.', 'danger')
        return redirect(url_for('auth.select_class'))
    session[SELECTED_CLASS] = class_name
    return redirect(url_for('auth.select_role'))


@bp.route('/role', methods=['GET', 'POST'])
def select_role():
    class_name = session.get(SELECTED_CLASS)
    if not class_name:
        return redirect(url_for('auth.select_class'))

    form = RoleForm()
    if form.validate_on_submit():
        session[SELECTED_ROLE] = form.role.data
        return redirect(url_for('auth.enter_key'))
    return render_template('auth/select_role.html', form=form, class_name=class_name)


@bp.route('/key', methods=['GET', 'POST'])
def enter_key():
    class_name = session.get(SELECTED_CLASS)
    role = session.get(SELECTED_ROLE)
    if not class_name or not role:
        flash('Select a class and a role first.', 'danger')
        return redirect(url_for('auth.select_class'))

    form = AccessKeyForm()
    if form.validate_on_submit():
        try:
            user, result = get_portal().auth.login(class_name, role, form.key.data)
        except ValidationError as e:
            flash(str(e), 'danger')
        except RemoteUnavailableError:
            flash('Cannot reach the database. Check your connection and try again.', 'danger')
        else:
            return _finish_login(user, result)
    return render_template('auth/enter_key.html', form=form,
                           class_name=class_name, role=role)


@bp.route('/quick-login', methods=['POST'])
def quick_login():
    form = ConfirmForm()
    if not form.validate_on_submit():
        return redirect(url_for('auth.select_class'))
    try:
        user, result = get_portal().auth.quick_login()
    except ValidationError as e:
        flash(str(e), 'danger')
        return redirect(url_for('auth.select_class'))
    except RemoteUnavailableError:
        flash('Cannot reach the database. Check your connection and try again.', 'danger')
        return redirect(url_for('auth.select_class'))
    return _finish_login(user, result)


@bp.route('/logout', methods=['POST'])
def logout():
    form = ConfirmForm()
    if form.validate_on_submit():
        get_portal().auth.logout(forget=request.form.get('forget') == '1')
        logout_user()
        flash('You have been logged out.', 'info')
    return redirect(url_for('auth.select_class'))

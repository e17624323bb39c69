from flask_wtf import FlaskForm
from flask_wtf.file import FileAllowed, FileField, FileRequired
from wtforms import HiddenField, PasswordField, SelectField, StringField, SubmitField, TextAreaField
from wtforms.validators import DataRequired, Length, Optional

from portal.permissions import ROLE_NAMES


class RoleForm(FlaskForm):
    role = SelectField('Role', choices=list(ROLE_NAMES.items()),
                       validators=[DataRequired(message='Choose a role')])
    submit = SubmitField('Continue')


class AccessKeyForm(FlaskForm):
    key = PasswordField('Access key', validators=[DataRequired(message='Enter an access key'), Length(max=128)])
    submit = SubmitField('Log in')


class HomeworkForm(FlaskForm):
    content = TextAreaField('Homework', validators=[DataRequired(message='Enter the homework first')])
    submit = SubmitField('Save')


class ImageUploadForm(FlaskForm):
    image = FileField('Image', validators=[
        FileRequired(message='Choose an image'),
        FileAllowed(['jpg', 'jpeg', 'png', 'gif', 'webp'], message='Please choose an image file (JPG, PNG, GIF)'),
    ])
    title = StringField('Title', validators=[Optional(), Length(max=200)])
    submit = SubmitField('Upload')


class ConfirmForm(FlaskForm):
    """Empty form used for CSRF-protected POST buttons."""
    next = HiddenField()
    submit = SubmitField('Confirm')

# Flask-WTF / WTForms
from flask_wtf import FlaskForm
from wtforms import BooleanField, PasswordField, RadioField, StringField, SubmitField, TextAreaField
from wtforms.validators import DataRequired, Email, Length, Optional


class LoginForm(FlaskForm):
    email = StringField("Email", validators=[DataRequired(), Email()])
    password = PasswordField("Password", validators=[DataRequired()])
    submit = SubmitField("Login")


class CreateUserForm(FlaskForm):
    username = StringField("Username", validators=[DataRequired(), Length(min=3, max=150)])
    email = StringField("Email", validators=[DataRequired(), Email()])
    password = PasswordField("Password", validators=[DataRequired(), Length(min=6)])
    role = RadioField("Role", choices=[("user", "User"), ("admin", "Admin")], default="user")
    submit = SubmitField("Create User")


class DetailsForm(FlaskForm):
    """Contribution details step. Required-ness is checked at submit time."""
    brand = StringField("Brand", validators=[Optional(), Length(max=200)])
    manufacturer = StringField("Manufacturer", validators=[Optional(), Length(max=200)])
    plastic_type = StringField("Plastic Type", validators=[Optional(), Length(max=100)])
    beach_name = StringField("Beach Name", validators=[Optional(), Length(max=200)])
    notes = TextAreaField("Additional Notes", validators=[Optional(), Length(max=2000)])


class ReviewForm(FlaskForm):
    brand = StringField("Brand", validators=[Optional(), Length(max=200)])
    manufacturer = StringField("Manufacturer", validators=[Optional(), Length(max=200)])
    plastic_type = StringField("Plastic Type", validators=[Optional(), Length(max=100)])
    beach_name = StringField("Beach Name", validators=[Optional(), Length(max=200)])
    notes = TextAreaField("Additional Notes", validators=[Optional(), Length(max=2000)])
    review_notes = TextAreaField("Review Notes", validators=[Optional(), Length(max=2000)])
    decision = RadioField(
        "Decision",
        choices=[("approve", "Approve & Classify"), ("reject", "Reject")],
        validators=[DataRequired()],
    )


class SettingsForm(FlaskForm):
    ai_enabled = BooleanField("Enable AI image analysis")

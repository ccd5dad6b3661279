"""WTForms form classes.

Forms read either form-encoded bodies or JSON bodies; Flask-WTF feeds
``request.get_json()`` to the form when the request is JSON.
"""

from __future__ import annotations

from datetime import date

from flask_wtf import FlaskForm
from wtforms import BooleanField, DateField, DecimalField, PasswordField, SelectField, StringField
from wtforms.validators import DataRequired, Email, Length, NumberRange, Optional

from nomina.models import EmployeeStatus
from nomina.report_export import EXPORT_FORMATS


def _strip(value: str | None) -> str | None:
    return value.strip() if value else value


class LoginForm(FlaskForm):
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)], filters=[_strip])
    password = PasswordField("Contraseña", validators=[DataRequired(), Length(min=8, max=255)])
    remember = BooleanField("Recordarme")


class CompanySelectForm(FlaskForm):
    company_id = SelectField("Empresa", choices=[], validators=[DataRequired()], coerce=str)


class EmployeeForm(FlaskForm):
    cedula = StringField("Cédula", validators=[DataRequired(), Length(max=32)], filters=[_strip])
    nombre = StringField("Nombre", validators=[DataRequired(), Length(max=128)], filters=[_strip])
    apellido = StringField("Apellido", validators=[DataRequired(), Length(max=128)], filters=[_strip])
    cargo = StringField("Cargo", validators=[Optional(), Length(max=128)], filters=[_strip])
    email = StringField("Email", validators=[Optional(), Email(), Length(max=255)], filters=[_strip])
    salario_base = DecimalField("Salario base", places=2, validators=[DataRequired(), NumberRange(min=0.01)])
    fecha_ingreso = DateField("Fecha de ingreso", validators=[DataRequired()], default=date.today)
    estado = SelectField(
        "Estado",
        choices=[(status.value, status.value.capitalize()) for status in EmployeeStatus],
        validators=[DataRequired()],
        default=EmployeeStatus.ACTIVO.value,
        coerce=str,
    )


class PeriodExportForm(FlaskForm):
    class Meta:
        csrf = False

    format = SelectField(
        "Formato",
        choices=[(name, name.upper()) for name in EXPORT_FORMATS],
        validators=[DataRequired()],
        default="csv",
        coerce=str,
    )


def form_errors(form: FlaskForm) -> list[str]:
    return [f"{name}: {message}" for name, messages in form.errors.items() for message in messages]

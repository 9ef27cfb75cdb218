from marshmallow import EXCLUDE, Schema, fields, pre_load, validates, validates_schema, ValidationError
from marshmallow.validate import Length, Regexp

ORG_NO_PATTERN = r"^\d{6}-\d{4}$"


def _norm_email(v):
    return v.strip().lower() if isinstance(v, str) else v


def _validate_password_length(value):
    if len(value) < 10:
        raise ValidationError("The password must be of minimum length 10 characters.")
    if len(value) > 256:
        raise ValidationError("The password must be of maximum length 256 characters.")


class UserCreateSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True)
    company = fields.String(required=True, validate=Length(min=1, max=255))
    org_no = fields.String(
        required=True,
        data_key="orgNo",
        validate=Regexp(ORG_NO_PATTERN, error="Please provide a valid organization number."),
    )

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data, email=_norm_email(data["email"]))
        return data

    @validates("password")
    def validate_password(self, value, **kwargs):
        _validate_password_length(value)


class UserLoginSchema(Schema):
    """Accepts {email, password} or the generic {identifier, secret}."""
    class Meta:
        unknown = EXCLUDE

    email = fields.String(required=True, validate=Length(min=1))
    password = fields.String(required=True, validate=Length(min=1), load_only=True)

    @pre_load
    def aliases(self, data, **kwargs):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "email" not in data and "identifier" in data:
            data["email"] = data.pop("identifier")
        if "password" not in data and "secret" in data:
            data["password"] = data.pop("secret")
        if "email" in data:
            data["email"] = _norm_email(data["email"])
        return data


class RefreshTokenSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    refresh_token = fields.String(required=True, data_key="refreshToken", validate=Length(min=1))


class PasswordChangeSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.String(required=True)
    password = fields.String(required=True, load_only=True)
    new_password = fields.String(required=True, load_only=True, data_key="newPassword")
    new_password_confirm = fields.String(required=True, load_only=True, data_key="newPasswordConfirm")

    @validates("new_password")
    def validate_new_password(self, value, **kwargs):
        _validate_password_length(value)

    @validates_schema
    def passwords_match(self, data, **kwargs):
        if data.get("new_password") != data.get("new_password_confirm"):
            raise ValidationError("Passwords do not match.", field_name="newPasswordConfirm")


class UserOutSchema(Schema):
    id = fields.String(allow_none=False)
    email = fields.String()
    company = fields.String()
    org_no = fields.String(data_key="orgNo")
    admin = fields.Boolean()
    created_at = fields.DateTime()
    updated_at = fields.DateTime()

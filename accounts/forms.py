from django import forms
from django.contrib.auth import get_user_model, password_validation
from django.contrib.auth.forms import AuthenticationForm, PasswordChangeForm

from core.choices import Role
from core.forms import IdListField

User = get_user_model()

MIN_PASSWORD_LENGTH = 6


class LoginForm(AuthenticationForm):
    """Login form with email as the username field."""

    username = forms.EmailField(label="Email")
    password = forms.CharField(label="Password", strip=False)

    error_messages = {
        'invalid_login': "Invalid email or password",
        'inactive': "Account is deactivated. Please contact admin.",
    }

    def clean_username(self):
        return self.cleaned_data['username'].strip().lower()


class UserFieldsMixin:
    """Shared normalisation and role rules for user forms."""

    def clean_email(self):
        email = self.cleaned_data['email'].strip().lower()
        clash = User.objects.filter(email=email)
        if self.instance.pk:
            clash = clash.exclude(pk=self.instance.pk)
        if clash.exists():
            raise forms.ValidationError("User with this email already exists")
        return email

    def clean_name(self):
        return self.cleaned_data['name'].strip()

    def clean_roll_number(self):
        roll_number = (self.cleaned_data.get('roll_number') or '').strip().upper()
        return roll_number or None

    def _post_clean(self):
        super()._post_clean()
        # Runs after the instance holds the submitted name and email
        password = self.cleaned_data.get('password')
        if password:
            try:
                password_validation.validate_password(password, self.instance)
            except forms.ValidationError as error:
                self.add_error('password', error)

    def clean(self):
        cleaned_data = super().clean()
        role = cleaned_data.get('role', getattr(self.instance, 'role', None))
        if role != Role.TEACHER:
            cleaned_data['employee_id'] = None
        if role != Role.STUDENT:
            cleaned_data['roll_number'] = None
            cleaned_data['year'] = None
        return cleaned_data


class RegisterForm(UserFieldsMixin, forms.ModelForm):
    """
    Self-registration. Only student and teacher accounts can be created
    this way; admins are provisioned or created by other admins.
    """
    password = forms.CharField(min_length=MIN_PASSWORD_LENGTH, strip=False)
    role = forms.ChoiceField(choices=[
        (Role.STUDENT, Role.STUDENT.label),
        (Role.TEACHER, Role.TEACHER.label),
    ])

    class Meta:
        model = User
        fields = ['name', 'email', 'role', 'employee_id', 'roll_number', 'department', 'year']

    def save(self, commit=True):
        user = super().save(commit=False)
        user.set_password(self.cleaned_data['password'])
        if commit:
            user.save()
        return user


class TeacherCreateForm(UserFieldsMixin, forms.ModelForm):
    """Admin form for creating a teacher with optional subject assignment."""
    password = forms.CharField(min_length=MIN_PASSWORD_LENGTH, strip=False)
    employee_id = forms.CharField(max_length=30)
    subjects = IdListField(required=False)

    class Meta:
        model = User
        fields = ['name', 'email', 'employee_id', 'department']

    def clean_employee_id(self):
        employee_id = self.cleaned_data['employee_id'].strip()
        if User.objects.filter(employee_id=employee_id).exists():
            raise forms.ValidationError("Employee ID already exists")
        return employee_id

    def clean(self):
        self.instance.role = Role.TEACHER
        return super().clean()

    def save(self, commit=True):
        user = super().save(commit=False)
        user.role = Role.TEACHER
        user.set_password(self.cleaned_data['password'])
        if commit:
            user.save()
        return user


class UserCreateForm(UserFieldsMixin, forms.ModelForm):
    """
    Admin creation of a user of any role. Teachers may be given subjects
    in the same request; admins can also sign in to the Django admin site.
    """
    password = forms.CharField(min_length=MIN_PASSWORD_LENGTH, strip=False)
    subjects = IdListField(required=False)

    class Meta:
        model = User
        fields = ['name', 'email', 'role', 'employee_id', 'roll_number', 'department', 'year']

    def save(self, commit=True):
        user = super().save(commit=False)
        user.set_password(self.cleaned_data['password'])
        user.is_staff = user.role == Role.ADMIN
        if commit:
            user.save()
        return user


class UserUpdateForm(UserFieldsMixin, forms.ModelForm):
    """
    Admin edit of any user. Bound through core.forms.bind_partial so absent
    fields keep their stored values. A blank password leaves it unchanged.
    """
    password = forms.CharField(required=False, min_length=MIN_PASSWORD_LENGTH, strip=False)
    subjects = IdListField(required=False)

    class Meta:
        model = User
        fields = ['name', 'email', 'role', 'employee_id', 'roll_number',
                  'department', 'year', 'is_active']

    def save(self, commit=True):
        user = super().save(commit=False)
        if self.cleaned_data.get('password'):
            user.set_password(self.cleaned_data['password'])
        if commit:
            user.save()
        return user


class ChangePasswordForm(PasswordChangeForm):
    """
    PasswordChangeForm fed from the API's current_password/new_password
    pair. The new password is run through AUTH_PASSWORD_VALIDATORS.
    """
    field_aliases = {
        'old_password': 'current_password',
        'new_password1': 'new_password',
        'new_password2': 'new_password',
    }

    error_messages = {
        **PasswordChangeForm.error_messages,
        'password_incorrect': "Current password is incorrect",
    }

    def __init__(self, user, data):
        new_password = data.get('new_password') or ''
        super().__init__(user, data={
            'old_password': data.get('current_password') or '',
            'new_password1': new_password,
            'new_password2': new_password,
        })

    def api_errors(self):
        """Form errors keyed by the API field names."""
        errors = {}
        for field, messages in self.errors.items():
            bucket = errors.setdefault(self.field_aliases.get(field, field), [])
            bucket.extend(m for m in messages if m not in bucket)
        return errors

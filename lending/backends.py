from django.conf import settings
from django.contrib.auth import get_user_model
from django.contrib.auth.backends import ModelBackend


def is_panel_staff(user):
    """Librarians (and superusers) may use the panel, subject to the allow-list."""
    if not user.is_authenticated or not user.is_active:
        return False
    if not user.is_librarian:
        return False
    allowed = settings.PANEL_ADMIN_EMAILS
    return not allowed or (user.email or '').lower() in allowed


class EmailBackend(ModelBackend):
    '''
    Sign staff in with their email address instead of the username.

    Matching is case-insensitive; an address shared by several accounts
    never authenticates.
    '''

    def authenticate(self, request, username=None, password=None, email=None, **kwargs):
        email = email or username
        if not email or password is None:
            return None
        UserModel = get_user_model()
        try:
            user = UserModel._default_manager.get(email__iexact=email)
        except (UserModel.DoesNotExist, UserModel.MultipleObjectsReturned):
            # Run the hasher once to keep timing close to a real check
            UserModel().set_password(password)
            return None
        if user.check_password(password) and self.user_can_authenticate(user):
            return user
        return None

from django import forms
from django.contrib.auth.forms import AuthenticationForm

from .backends import is_panel_staff
from .models import Alert, Book


class StaffLoginForm(AuthenticationForm):
    username = forms.EmailField(label='Email', widget=forms.EmailInput(attrs={'autofocus': True}))

    error_messages = {
        **AuthenticationForm.error_messages,
        'not_staff': 'Access denied. Unauthorized email address.',
    }

    def confirm_login_allowed(self, user):
        super().confirm_login_allowed(user)
        if not is_panel_staff(user):
            raise forms.ValidationError(self.error_messages['not_staff'], code='not_staff')


class BookForm(forms.ModelForm):
    cover = forms.FileField(required=False, help_text='Optional cover image')

    class Meta:
        model = Book
        fields = ['BookCode', 'Title', 'Author', 'Genre', 'ImageUrl', 'Count']
        labels = {'BookCode': 'Book ID', 'ImageUrl': 'Image URL'}

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        for name in ('Author', 'Genre'):
            self.fields[name].required = True


class RestockForm(forms.Form):
    amount = forms.IntegerField(min_value=1)


class AlertForm(forms.Form):
    TYPE_CHOICES = [(Alert.REMINDER, 'Reminder'), (Alert.OVERDUE, 'Overdue'), (Alert.CUSTOM, 'Custom')]
    Message = forms.CharField(widget=forms.Textarea, max_length=1000)
    Type = forms.ChoiceField(choices=TYPE_CHOICES, initial=Alert.CUSTOM)

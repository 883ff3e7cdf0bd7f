from django.db import models
from django.contrib.auth.models import AbstractUser
from django.utils import timezone

from .exceptions import ImmutableRecordError
from .stats import can_approve_return

UNKNOWN = 'Unknown'


class User(AbstractUser):
    ROLE_CHOICES = [('Librarian', 'Librarian'), ('Member', 'Member')]
    Role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='Member')
    FullName = models.CharField(max_length=255, blank=True, default='')
    # number of books currently held
    Nob = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = 'users'

    @property
    def is_librarian(self):
        return self.Role == 'Librarian' or self.is_superuser

    @property
    def display_name(self):
        return self.FullName or UNKNOWN


class Book(models.Model):
    BookCode = models.CharField(max_length=50, unique=True)
    Title = models.CharField(max_length=255)
    Author = models.CharField(max_length=255, default=UNKNOWN)
    Genre = models.CharField(max_length=100, blank=True, default='')
    ImageUrl = models.CharField(max_length=500, blank=True, default='')
    Count = models.PositiveIntegerField(default=0)
    IsAvailable = models.BooleanField(default=False, editable=False)

    class Meta:
        db_table = 'books'
        ordering = ['Title']

    def save(self, *args, **kwargs):
        self.IsAvailable = self.Count > 0
        update_fields = kwargs.get('update_fields')
        if update_fields is not None and 'Count' in update_fields:
            kwargs['update_fields'] = {*update_fields, 'IsAvailable'}
        super().save(*args, **kwargs)

    def __str__(self): return self.Title


class LendingRequest(models.Model):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (APPROVED, 'Approved'),
        (REJECTED, 'Rejected'),
    ]

    UserID = models.ForeignKey(User, on_delete=models.CASCADE, related_name='lending_requests')
    # Loans outlive catalog deletion
    BookID = models.ForeignKey(Book, on_delete=models.SET_NULL, null=True, blank=True,
                               related_name='lending_requests')
    Status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)
    TimeStamp = models.DateTimeField(default=timezone.now)
    ApprovedAt = models.DateTimeField(null=True, blank=True)
    DueDate = models.DateTimeField(null=True, blank=True)

    IsReturned = models.BooleanField(default=False)
    IsReturnRequest = models.BooleanField(default=False)
    ReturnRequestedAt = models.DateTimeField(null=True, blank=True)
    ReturnRequestStatus = models.CharField(max_length=20, choices=STATUS_CHOICES, blank=True, default='')
    ReturnedAt = models.DateTimeField(null=True, blank=True)

    PenaltyAmount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    IsPaid = models.BooleanField(default=False)
    PaidAt = models.DateTimeField(null=True, blank=True)
    PaidBy = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')

    ProcessedAt = models.DateTimeField(null=True, blank=True)
    ProcessedBy = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')

    class Meta:
        db_table = 'lending_requests'
        ordering = ['-TimeStamp']

    @property
    def can_approve(self):
        return can_approve_return(self.IsPaid, self.PenaltyAmount)

    @property
    def is_active_loan(self):
        return self.Status == self.APPROVED and not self.IsReturned

    @property
    def is_pending_return(self):
        return self.is_active_loan and self.IsReturnRequest

    def is_overdue(self, now=None):
        if self.DueDate and self.is_active_loan:
            return (now or timezone.now()) > self.DueDate
        return False

    @property
    def user_name(self):
        return self.UserID.display_name if self.UserID_id else UNKNOWN

    @property
    def user_email(self):
        return (self.UserID.email if self.UserID_id else '') or UNKNOWN

    @property
    def book_title(self):
        return self.BookID.Title if self.BookID_id else 'Unknown Book'

    @property
    def book_author(self):
        return self.BookID.Author if self.BookID_id else 'Unknown Author'

    def __str__(self):
        return f"{self.user_name} requested {self.book_title} ({self.Status})"


class ProcessedRequest(models.Model):
    """Append-only record of a request leaving its pending state."""

    BORROW = 'borrow'
    RETURN = 'return'
    TYPE_CHOICES = [(BORROW, 'Borrow'), (RETURN, 'Return')]
    STATUS_CHOICES = [
        (LendingRequest.APPROVED, 'Approved'),
        (LendingRequest.REJECTED, 'Rejected'),
    ]

    Type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    LendingRequestID = models.ForeignKey(LendingRequest, on_delete=models.SET_NULL, null=True, blank=True,
                                         related_name='history')
    UserID = models.ForeignKey(User, on_delete=models.CASCADE, related_name='processed_requests')
    BookID = models.ForeignKey(Book, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    RequestedAt = models.DateTimeField()
    ProcessedAt = models.DateTimeField(default=timezone.now)
    ProcessedBy = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    Status = models.CharField(max_length=20, choices=STATUS_CHOICES)

    class Meta:
        db_table = 'processed_requests'
        ordering = ['-ProcessedAt']

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableRecordError('Processed requests cannot be modified.')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError('Processed requests cannot be deleted.')

    @property
    def user_name(self):
        return self.UserID.display_name

    @property
    def user_email(self):
        return self.UserID.email or UNKNOWN

    @property
    def book_title(self):
        return self.BookID.Title if self.BookID_id else 'Unknown Book'

    @property
    def processed_by_name(self):
        if not self.ProcessedBy_id:
            return 'admin'
        return self.ProcessedBy.FullName or self.ProcessedBy.username

    def __str__(self):
        return f"{self.Type} {self.Status}: {self.user_name} / {self.book_title}"


class Alert(models.Model):
    APPROVAL = 'approval'
    REJECTION = 'rejection'
    OVERDUE = 'overdue'
    REMINDER = 'reminder'
    CUSTOM = 'custom'
    TYPE_CHOICES = [
        (APPROVAL, 'Approval'),
        (REJECTION, 'Rejection'),
        (OVERDUE, 'Overdue'),
        (REMINDER, 'Reminder'),
        (CUSTOM, 'Custom'),
    ]

    UserID = models.ForeignKey(User, on_delete=models.CASCADE, related_name='alerts')
    BookID = models.ForeignKey(Book, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    IsRead = models.BooleanField(default=False)
    Timestamp = models.DateTimeField(default=timezone.now)
    Message = models.TextField()
    Type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=CUSTOM)
    SentBy = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')

    class Meta:
        db_table = 'alerts'
        ordering = ['-Timestamp']

    def __str__(self): return f"{self.UserID.username}: {self.Message}"

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import Alert, Book, LendingRequest, ProcessedRequest, User


@admin.register(User)
class LibraryUserAdmin(UserAdmin):
    list_display = ('username', 'email', 'FullName', 'Role', 'Nob')
    list_filter = ('Role',) + UserAdmin.list_filter
    fieldsets = UserAdmin.fieldsets + (('Library', {'fields': ('Role', 'FullName', 'Nob')}),)


@admin.register(Book)
class BookAdmin(admin.ModelAdmin):
    list_display = ('BookCode', 'Title', 'Author', 'Genre', 'Count', 'IsAvailable')
    search_fields = ('BookCode', 'Title', 'Author')
    readonly_fields = ('IsAvailable',)


@admin.register(LendingRequest)
class LendingRequestAdmin(admin.ModelAdmin):
    list_display = ('id', 'UserID', 'BookID', 'Status', 'IsReturnRequest', 'IsReturned', 'PenaltyAmount', 'IsPaid')
    list_filter = ('Status', 'IsReturned', 'IsReturnRequest', 'IsPaid')
    list_select_related = ('UserID', 'BookID')


@admin.register(ProcessedRequest)
class ProcessedRequestAdmin(admin.ModelAdmin):
    list_display = ('Type', 'Status', 'UserID', 'BookID', 'ProcessedAt', 'ProcessedBy')
    list_filter = ('Type', 'Status')

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Alert)
class AlertAdmin(admin.ModelAdmin):
    list_display = ('UserID', 'Type', 'Message', 'IsRead', 'Timestamp')
    list_filter = ('Type', 'IsRead')

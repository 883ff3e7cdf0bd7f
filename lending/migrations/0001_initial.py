import django.contrib.auth.models
import django.contrib.auth.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('username', models.CharField(error_messages={'unique': 'A user with that username already exists.'}, help_text='Required. 150 characters or fewer. Letters, digits and @/./+/-/_ only.', max_length=150, unique=True, validators=[django.contrib.auth.validators.UnicodeUsernameValidator()], verbose_name='username')),
                ('first_name', models.CharField(blank=True, max_length=150, verbose_name='first name')),
                ('last_name', models.CharField(blank=True, max_length=150, verbose_name='last name')),
                ('email', models.EmailField(blank=True, max_length=254, verbose_name='email address')),
                ('is_staff', models.BooleanField(default=False, help_text='Designates whether the user can log into this admin site.', verbose_name='staff status')),
                ('is_active', models.BooleanField(default=True, help_text='Designates whether this user should be treated as active. Unselect this instead of deleting accounts.', verbose_name='active')),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('Role', models.CharField(choices=[('Librarian', 'Librarian'), ('Member', 'Member')], default='Member', max_length=20)),
                ('FullName', models.CharField(blank=True, default='', max_length=255)),
                ('Nob', models.PositiveIntegerField(default=0)),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'db_table': 'users',
            },
            managers=[
                ('objects', django.contrib.auth.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='Book',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('BookCode', models.CharField(max_length=50, unique=True)),
                ('Title', models.CharField(max_length=255)),
                ('Author', models.CharField(default='Unknown', max_length=255)),
                ('Genre', models.CharField(blank=True, default='', max_length=100)),
                ('ImageUrl', models.CharField(blank=True, default='', max_length=500)),
                ('Count', models.PositiveIntegerField(default=0)),
                ('IsAvailable', models.BooleanField(default=False, editable=False)),
            ],
            options={
                'db_table': 'books',
                'ordering': ['Title'],
            },
        ),
        migrations.CreateModel(
            name='LendingRequest',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('Status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected')], default='pending', max_length=20)),
                ('TimeStamp', models.DateTimeField(default=django.utils.timezone.now)),
                ('ApprovedAt', models.DateTimeField(blank=True, null=True)),
                ('DueDate', models.DateTimeField(blank=True, null=True)),
                ('IsReturned', models.BooleanField(default=False)),
                ('IsReturnRequest', models.BooleanField(default=False)),
                ('ReturnRequestedAt', models.DateTimeField(blank=True, null=True)),
                ('ReturnRequestStatus', models.CharField(blank=True, choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected')], default='', max_length=20)),
                ('ReturnedAt', models.DateTimeField(blank=True, null=True)),
                ('PenaltyAmount', models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ('IsPaid', models.BooleanField(default=False)),
                ('PaidAt', models.DateTimeField(blank=True, null=True)),
                ('ProcessedAt', models.DateTimeField(blank=True, null=True)),
                ('BookID', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='lending_requests', to='lending.book')),
                ('PaidBy', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('ProcessedBy', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('UserID', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='lending_requests', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'lending_requests',
                'ordering': ['-TimeStamp'],
            },
        ),
        migrations.CreateModel(
            name='ProcessedRequest',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('Type', models.CharField(choices=[('borrow', 'Borrow'), ('return', 'Return')], max_length=10)),
                ('RequestedAt', models.DateTimeField()),
                ('ProcessedAt', models.DateTimeField(default=django.utils.timezone.now)),
                ('Status', models.CharField(choices=[('approved', 'Approved'), ('rejected', 'Rejected')], max_length=20)),
                ('BookID', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='lending.book')),
                ('LendingRequestID', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='history', to='lending.lendingrequest')),
                ('ProcessedBy', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('UserID', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='processed_requests', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'processed_requests',
                'ordering': ['-ProcessedAt'],
            },
        ),
        migrations.CreateModel(
            name='Alert',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('IsRead', models.BooleanField(default=False)),
                ('Timestamp', models.DateTimeField(default=django.utils.timezone.now)),
                ('Message', models.TextField()),
                ('Type', models.CharField(choices=[('approval', 'Approval'), ('rejection', 'Rejection'), ('overdue', 'Overdue'), ('reminder', 'Reminder'), ('custom', 'Custom')], default='custom', max_length=20)),
                ('BookID', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='lending.book')),
                ('SentBy', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('UserID', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='alerts', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'alerts',
                'ordering': ['-Timestamp'],
            },
        ),
    ]

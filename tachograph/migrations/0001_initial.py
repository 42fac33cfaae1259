import django.core.validators
import django.db.models.deletion
import uuid
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='TachographRecord',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('organization_id', models.CharField(db_index=True, max_length=100)),
                ('vehicle_id', models.CharField(db_index=True, max_length=100)),
                ('driver_id', models.CharField(blank=True, db_index=True, default='', max_length=100)),
                ('file_type', models.CharField(choices=[('ddd', 'DDD (Generation 1)'), ('tgd', 'TGD (Generation 1)'), ('c1b', 'C1B Driver Card (Generation 1)'), ('v1b', 'V1B Vehicle Unit (Generation 1)'), ('v2b', 'V2B Vehicle Unit (Generation 2)'), ('esm', 'ESM Smart Tachograph')], max_length=10)),
                ('file_name', models.CharField(max_length=255)),
                ('file', models.CharField(help_text='Storage path of the uploaded file', max_length=500)),
                ('file_size_bytes', models.PositiveIntegerField(default=0)),
                ('record_date', models.DateField()),
                ('download_date', models.DateTimeField()),
                ('period_start', models.DateTimeField(blank=True, null=True)),
                ('period_end', models.DateTimeField(blank=True, null=True)),
                ('next_download_due', models.DateField(blank=True, null=True)),
                ('device_type', models.CharField(blank=True, default='', max_length=50)),
                ('generation_type', models.CharField(blank=True, default='', max_length=20)),
                ('download_method', models.CharField(blank=True, default='', max_length=50)),
                ('bluetooth_download', models.BooleanField(default=False)),
                ('remote_download', models.BooleanField(default=False)),
                ('smart_features', models.JSONField(blank=True, default=dict)),
                ('verification_status', models.CharField(choices=[('verified', 'Verified'), ('failed', 'Failed')], max_length=20)),
                ('issues_found', models.PositiveIntegerField(default=0)),
                ('data_integrity', models.CharField(choices=[('intact', 'Intact'), ('suspicious', 'Suspicious'), ('corrupted', 'Corrupted')], default='intact', max_length=20)),
                ('analysis_results', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'Tachograph Record',
                'verbose_name_plural': 'Tachograph Records',
                'db_table': 'tachograph_records',
                'ordering': ['-download_date'],
            },
        ),
        migrations.CreateModel(
            name='ActivitySample',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('organization_id', models.CharField(db_index=True, max_length=100)),
                ('driver_id', models.CharField(db_index=True, max_length=100)),
                ('vehicle_id', models.CharField(max_length=100)),
                ('timestamp_start', models.DateTimeField()),
                ('timestamp_end', models.DateTimeField()),
                ('activity_type', models.CharField(choices=[('driving', 'Driving'), ('break', 'Break'), ('rest', 'Rest'), ('other_work', 'Other Work'), ('availability', 'Availability')], max_length=20)),
                ('source', models.CharField(choices=[('tachograph', 'Tachograph'), ('manual_clock', 'Manual Clock')], default='tachograph', max_length=20)),
                ('record', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='samples', to='tachograph.tachographrecord')),
            ],
            options={
                'verbose_name': 'Activity Sample',
                'verbose_name_plural': 'Activity Samples',
                'db_table': 'activity_samples',
                'ordering': ['driver_id', 'timestamp_start'],
            },
        ),
        migrations.CreateModel(
            name='TimeEntry',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('organization_id', models.CharField(db_index=True, max_length=100)),
                ('driver_id', models.CharField(db_index=True, max_length=100)),
                ('entry_date', models.DateField()),
                ('clock_in', models.DateTimeField(blank=True, null=True)),
                ('clock_out', models.DateTimeField(blank=True, null=True)),
                ('break_minutes', models.PositiveIntegerField(default=0)),
                ('total_hours', models.FloatField(default=0, validators=[django.core.validators.MinValueValidator(0)])),
            ],
            options={
                'verbose_name': 'Time Entry',
                'verbose_name_plural': 'Time Entries',
                'db_table': 'time_entries',
                'ordering': ['driver_id', 'entry_date'],
                'unique_together': {('driver_id', 'entry_date')},
            },
        ),
        migrations.CreateModel(
            name='DailyRest',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('organization_id', models.CharField(db_index=True, max_length=100)),
                ('driver_id', models.CharField(db_index=True, max_length=100)),
                ('rest_date', models.DateField()),
                ('duration_hours', models.FloatField(default=0, validators=[django.core.validators.MinValueValidator(0)])),
                ('rest_type', models.CharField(choices=[('daily_rest', 'Daily Rest'), ('reduced_rest', 'Reduced Daily Rest'), ('weekly_rest', 'Weekly Rest')], default='daily_rest', max_length=20)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Daily Rest',
                'verbose_name_plural': 'Daily Rest',
                'db_table': 'daily_rest',
                'ordering': ['driver_id', 'rest_date'],
                'unique_together': {('driver_id', 'rest_date')},
            },
        ),
        migrations.CreateModel(
            name='WeeklyRest',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('organization_id', models.CharField(db_index=True, max_length=100)),
                ('driver_id', models.CharField(db_index=True, max_length=100)),
                ('week_start_date', models.DateField()),
                ('week_end_date', models.DateField()),
                ('total_rest_hours', models.FloatField(validators=[django.core.validators.MinValueValidator(0)])),
                ('rest_type', models.CharField(choices=[('full_weekly_rest', 'Full Weekly Rest (45h)'), ('reduced_weekly_rest', 'Reduced Weekly Rest (24h)'), ('compensated_rest', 'Compensated Rest')], max_length=25)),
                ('compensation_required', models.BooleanField(default=False)),
                ('compensation_date', models.DateField(blank=True, null=True)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Weekly Rest',
                'verbose_name_plural': 'Weekly Rest',
                'db_table': 'weekly_rest',
                'ordering': ['-week_start_date'],
                'unique_together': {('driver_id', 'week_start_date')},
            },
        ),
        migrations.CreateModel(
            name='Infringement',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('infringement_number', models.CharField(max_length=50, unique=True)),
                ('source_assessment_id', models.CharField(db_index=True, max_length=100)),
                ('violation_kind', models.CharField(max_length=50)),
                ('organization_id', models.CharField(db_index=True, max_length=100)),
                ('driver_id', models.CharField(db_index=True, max_length=100)),
                ('vehicle_id', models.CharField(blank=True, default='', max_length=100)),
                ('description', models.TextField()),
                ('severity', models.CharField(choices=[('medium', 'Medium'), ('high', 'High')], max_length=10)),
                ('status', models.CharField(choices=[('open', 'Open'), ('reviewed', 'Reviewed'), ('resolved', 'Resolved')], default='open', max_length=10)),
                ('incident_date', models.DateField()),
                ('reviewed_by', models.CharField(blank=True, default='', max_length=100)),
                ('reviewed_at', models.DateTimeField(blank=True, null=True)),
                ('resolved_at', models.DateTimeField(blank=True, null=True)),
                ('review_notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'Infringement',
                'verbose_name_plural': 'Infringements',
                'db_table': 'infringements',
                'ordering': ['-created_at'],
                'unique_together': {('source_assessment_id', 'violation_kind')},
            },
        ),
        migrations.CreateModel(
            name='ComplianceAlert',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('organization_id', models.CharField(db_index=True, max_length=100)),
                ('entity_type', models.CharField(max_length=50)),
                ('entity_id', models.CharField(max_length=100)),
                ('alert_type', models.CharField(max_length=50)),
                ('title', models.CharField(max_length=255)),
                ('description', models.TextField()),
                ('severity', models.CharField(choices=[('medium', 'Medium'), ('high', 'High')], max_length=10)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'Compliance Alert',
                'verbose_name_plural': 'Compliance Alerts',
                'db_table': 'compliance_alerts',
                'ordering': ['-created_at'],
                'unique_together': {('entity_id', 'alert_type')},
            },
        ),
    ]

# Generated migration for towns app

from django.db import migrations, models
import django.db.models.deletion
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Town',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(help_text='Display name of the town', max_length=255)),
                ('slug', models.SlugField(max_length=120, unique=True)),
                ('region', models.CharField(blank=True, default='', max_length=255)),
                ('timezone', models.CharField(default='America/Chicago', help_text='IANA timezone used for season and route window detection', max_length=64)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'towns_town',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='TownMembership',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('business_id', models.CharField(help_text='Id of the business in the owning store', max_length=255)),
                ('business_name', models.CharField(blank=True, default='', max_length=255)),
                ('business_type', models.CharField(blank=True, default='other', help_text='Free-form business type, mapped onto a flow category', max_length=64)),
                ('participation_level', models.CharField(choices=[('standard', 'Standard'), ('leader', 'Leader'), ('hidden', 'Hidden')], default='standard', max_length=20)),
                ('active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('town', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='memberships', to='towns.town')),
            ],
            options={
                'db_table': 'towns_membership',
                'indexes': [models.Index(fields=['town', 'active'], name='towns_membership_active_idx')],
                'unique_together': {('town', 'business_id')},
            },
        ),
    ]

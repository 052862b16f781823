# Generated migration for recommendations app

import django.core.validators
from django.db import migrations, models
import django.db.models.deletion
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('towns', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='FlowEdge',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('from_category', models.CharField(choices=[('coffee', 'Coffee / Cafe'), ('fitness', 'Fitness'), ('beauty', 'Salon / Beauty'), ('retail', 'Retail'), ('food', 'Food'), ('services', 'Services'), ('other', 'Local stop')], max_length=20)),
                ('to_category', models.CharField(choices=[('coffee', 'Coffee / Cafe'), ('fitness', 'Fitness'), ('beauty', 'Salon / Beauty'), ('retail', 'Retail'), ('food', 'Food'), ('services', 'Services'), ('other', 'Local stop')], max_length=20)),
                ('weight', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('town', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='flow_edges', to='towns.town')),
            ],
            options={
                'db_table': 'recommendations_flow_edge',
                'indexes': [models.Index(fields=['town', 'from_category'], name='rec_flow_edge_from_idx')],
                'unique_together': {('town', 'from_category', 'to_category')},
            },
        ),
        migrations.CreateModel(
            name='SeasonOverride',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('season_key', models.CharField(choices=[('winter', 'Winter'), ('spring', 'Spring'), ('summer', 'Summer'), ('fall', 'Fall'), ('holiday', 'Holiday'), ('school', 'School'), ('football', 'Football'), ('basketball', 'Basketball'), ('baseball', 'Baseball'), ('festival', 'Festival')], max_length=20)),
                ('start_date', models.DateField(blank=True, null=True)),
                ('end_date', models.DateField(blank=True, null=True)),
                ('notes', models.TextField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('town', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='season_overrides', to='towns.town')),
            ],
            options={
                'db_table': 'recommendations_season_override',
                'unique_together': {('town', 'season_key')},
            },
        ),
        migrations.CreateModel(
            name='RouteSeasonWeight',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('season_tag', models.CharField(choices=[('winter', 'Winter'), ('spring', 'Spring'), ('summer', 'Summer'), ('fall', 'Fall'), ('holiday', 'Holiday'), ('school', 'School'), ('football', 'Football'), ('basketball', 'Basketball'), ('baseball', 'Baseball'), ('festival', 'Festival')], max_length=20)),
                ('window', models.CharField(choices=[('morning', 'Morning'), ('lunch', 'Lunch'), ('after_work', 'After Work'), ('evening', 'Evening'), ('weekend', 'Weekend')], max_length=20)),
                ('from_category', models.CharField(choices=[('coffee', 'Coffee / Cafe'), ('fitness', 'Fitness'), ('beauty', 'Salon / Beauty'), ('retail', 'Retail'), ('food', 'Food'), ('services', 'Services'), ('other', 'Local stop')], max_length=20)),
                ('to_category', models.CharField(choices=[('coffee', 'Coffee / Cafe'), ('fitness', 'Fitness'), ('beauty', 'Salon / Beauty'), ('retail', 'Retail'), ('food', 'Food'), ('services', 'Services'), ('other', 'Local stop')], max_length=20)),
                ('weight_delta', models.IntegerField(default=1, help_text='Added to the edge weight while the season tag and window are active', validators=[django.core.validators.MinValueValidator(-1000), django.core.validators.MaxValueValidator(1000)])),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('town', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='route_season_weights', to='towns.town')),
            ],
            options={
                'db_table': 'recommendations_route_season_weight',
                'indexes': [models.Index(fields=['town', 'window'], name='rec_season_weight_win_idx')],
            },
        ),
    ]

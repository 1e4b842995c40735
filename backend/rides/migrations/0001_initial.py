import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('locations', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Ride',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('departure_time', models.DateTimeField()),
                ('creator_name', models.CharField(blank=True, default='', max_length=50)),
                ('creator_phone', models.CharField(blank=True, default='', max_length=15)),
                ('max_passengers', models.PositiveSmallIntegerField(blank=True, null=True, validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(8)])),
                ('seats_taken', models.PositiveSmallIntegerField(default=0)),
                ('status', models.CharField(choices=[('waiting', 'Waiting'), ('in_progress', 'In Progress'), ('completed', 'Completed'), ('cancelled', 'Cancelled'), ('archived', 'Archived')], default='waiting', max_length=20)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('origin', models.ForeignKey(db_constraint=False, on_delete=django.db.models.deletion.DO_NOTHING, related_name='departing_rides', to='locations.location')),
                ('destination', models.ForeignKey(db_constraint=False, on_delete=django.db.models.deletion.DO_NOTHING, related_name='arriving_rides', to='locations.location')),
            ],
            options={
                'db_table': 'rides',
                'ordering': ['departure_time'],
                'indexes': [
                    models.Index(fields=['origin', 'destination', 'status', 'departure_time'], name='ride_route_lookup'),
                    models.Index(fields=['status', 'updated_at'], name='ride_status_updated'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('origin', models.F('destination')), _negated=True), name='ride_origin_not_destination'),
                    models.CheckConstraint(condition=models.Q(('max_passengers__isnull', True), ('seats_taken__lte', models.F('max_passengers')), _connector='OR'), name='ride_seats_within_capacity'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Passenger',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=50)),
                ('phone', models.CharField(max_length=15)),
                ('joined_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('idempotency_key', models.CharField(blank=True, max_length=100, null=True, unique=True)),
                ('ride', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='passengers', to='rides.ride')),
            ],
            options={
                'db_table': 'ride_passengers',
                'ordering': ['joined_at', 'id'],
                'constraints': [
                    models.UniqueConstraint(fields=('ride', 'phone'), name='unique_ride_passenger_phone'),
                ],
            },
        ),
    ]

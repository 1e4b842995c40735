from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models


class Location(models.Model):
    """Named pickup / drop-off point that rides run between."""

    name = models.CharField(max_length=100, unique=True)
    address = models.CharField(max_length=200, blank=True, default='')

    # Optional map position
    latitude = models.DecimalField(
        max_digits=9,
        decimal_places=6,
        null=True,
        blank=True,
        validators=[MinValueValidator(-90), MaxValueValidator(90)]
    )
    longitude = models.DecimalField(
        max_digits=9,
        decimal_places=6,
        null=True,
        blank=True,
        validators=[MinValueValidator(-180), MaxValueValidator(180)]
    )

    # Inactive locations keep their rides but accept no new ones
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'locations'
        ordering = ['name']

    def __str__(self):
        return self.name if self.is_active else f"{self.name} (inactive)"

    @property
    def coordinates(self):
        if self.latitude is None or self.longitude is None:
            return None
        return {'lat': float(self.latitude), 'lng': float(self.longitude)}

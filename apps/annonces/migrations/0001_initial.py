import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Annonce',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('titre', models.CharField(max_length=100, verbose_name='Titre')),
                ('description', models.TextField(blank=True, max_length=1000, verbose_name='Description')),
                ('prix', models.DecimalField(decimal_places=2, max_digits=10, validators=[django.core.validators.MinValueValidator(0)], verbose_name='Prix')),
                ('categorie', models.CharField(choices=[('livres', 'Livres & cours'), ('electronique', 'Électronique'), ('meubles', 'Meubles'), ('vetements', 'Vêtements'), ('autre', 'Autre')], default='autre', max_length=20, verbose_name='Catégorie')),
                ('etat', models.CharField(choices=[('neuf', 'Neuf'), ('tres_bon', 'Très bon état'), ('bon', 'Bon état'), ('usage', 'Usagé')], default='bon', max_length=10, verbose_name='État')),
                ('est_active', models.BooleanField(default=True, verbose_name='Active')),
                ('est_vendue', models.BooleanField(default=False, verbose_name='Vendue')),
                ('vues', models.PositiveIntegerField(default=0, verbose_name='Vues')),
                ('date_creation', models.DateTimeField(default=django.utils.timezone.now)),
                ('date_modification', models.DateTimeField(auto_now=True)),
                ('vendeur', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='annonces', to=settings.AUTH_USER_MODEL, verbose_name='Vendeur')),
            ],
            options={
                'verbose_name': 'Annonce',
                'verbose_name_plural': 'Annonces',
                'ordering': ['-date_creation'],
                'indexes': [
                    models.Index(fields=['est_active', 'est_vendue'], name='annonce_disponible_idx'),
                    models.Index(fields=['vendeur', '-date_creation'], name='annonce_vendeur_date_idx'),
                ],
            },
        ),
    ]

import django.db.models.deletion
import django.utils.timezone
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('annonces', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='TentativeAchat',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('uid_acheteur', models.CharField(max_length=128, verbose_name="Identifiant externe de l'acheteur")),
                ('otp_hash', models.CharField(max_length=64, verbose_name='Empreinte du code')),
                ('otp_sel', models.CharField(max_length=24, verbose_name='Sel')),
                ('date_expiration', models.DateTimeField(db_index=True, verbose_name='Expire le')),
                ('essais_echoues', models.PositiveSmallIntegerField(default=0, verbose_name='Essais échoués')),
                ('statut', django_fsm.FSMField(choices=[('pending', 'En attente'), ('confirmed', 'Confirmée'), ('cancelled', 'Annulée'), ('expired', 'Expirée')], db_index=True, default='pending', max_length=50, verbose_name='Statut')),
                ('date_creation', models.DateTimeField(default=django.utils.timezone.now, verbose_name='Initiée le')),
                ('date_modification', models.DateTimeField(auto_now=True)),
                ('acheteur', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='tentatives_achat', to=settings.AUTH_USER_MODEL, verbose_name='Acheteur')),
                ('annonce', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='tentatives_achat', to='annonces.annonce', verbose_name='Annonce')),
                ('vendeur', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='tentatives_vente', to=settings.AUTH_USER_MODEL, verbose_name='Vendeur')),
            ],
            options={
                'verbose_name': "Tentative d'achat",
                'verbose_name_plural': "Tentatives d'achat",
                'ordering': ['-date_creation', '-pk'],
            },
        ),
        migrations.AddIndex(
            model_name='tentativeachat',
            index=models.Index(fields=['annonce', 'statut', 'date_expiration'], name='tentative_annonce_statut_idx'),
        ),
        migrations.AddConstraint(
            model_name='tentativeachat',
            constraint=models.UniqueConstraint(condition=models.Q(('statut', 'pending')), fields=('annonce', 'acheteur'), name='tentative_en_attente_unique'),
        ),
    ]

import django.db.models.deletion
import django.utils.timezone
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
            name='Conversation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('cle_paire', models.CharField(blank=True, db_index=True, max_length=50, verbose_name='Clé de paire')),
                ('dernier_message', models.CharField(blank=True, max_length=503, verbose_name='Dernier message')),
                ('dernier_message_date', models.DateTimeField(blank=True, null=True)),
                ('est_active', models.BooleanField(default=True, verbose_name='Active')),
                ('date_creation', models.DateTimeField(auto_now_add=True, verbose_name='Créée le')),
                ('date_modification', models.DateTimeField(auto_now=True)),
                ('annonce', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='conversations', to='annonces.annonce', verbose_name='Annonce')),
                ('dernier_expediteur', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Conversation',
                'verbose_name_plural': 'Conversations',
                'ordering': ['-date_modification'],
            },
        ),
        migrations.CreateModel(
            name='Participation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('non_lus', models.PositiveIntegerField(default=0, verbose_name='Non lus')),
                ('date_arrivee', models.DateTimeField(auto_now_add=True)),
                ('conversation', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='participations', to='chat.conversation')),
                ('utilisateur', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='participations', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Participation',
                'verbose_name_plural': 'Participations',
            },
        ),
        migrations.AddField(
            model_name='conversation',
            name='participants',
            field=models.ManyToManyField(related_name='conversations', through='chat.Participation', to=settings.AUTH_USER_MODEL, verbose_name='Participants'),
        ),
        migrations.CreateModel(
            name='MessageChat',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('type_message', models.CharField(choices=[('text', 'Texte'), ('image', 'Image'), ('system', 'Système')], default='text', max_length=10, verbose_name='Type')),
                ('contenu', models.TextField(blank=True, max_length=2000, verbose_name='Message')),
                ('images', models.JSONField(blank=True, default=list, verbose_name='Images')),
                ('is_read', models.BooleanField(default=False, verbose_name='Lu')),
                ('date_lecture', models.DateTimeField(blank=True, null=True, verbose_name='Lu le')),
                ('is_deleted', models.BooleanField(default=False, verbose_name='Supprimé')),
                ('date_modification_contenu', models.DateTimeField(blank=True, null=True, verbose_name='Modifié le')),
                ('date_envoi', models.DateTimeField(db_index=True, default=django.utils.timezone.now, verbose_name='Envoyé le')),
                ('conversation', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='messages', to='chat.conversation', verbose_name='Conversation')),
                ('expediteur', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='messages_envoyes', to=settings.AUTH_USER_MODEL, verbose_name='Expéditeur')),
            ],
            options={
                'verbose_name': 'Message',
                'verbose_name_plural': 'Messages',
                'ordering': ['date_envoi', 'pk'],
            },
        ),
        migrations.CreateModel(
            name='LectureMessage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('date_lecture', models.DateTimeField(default=django.utils.timezone.now)),
                ('message', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='lectures', to='chat.messagechat')),
                ('utilisateur', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='lectures', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Lecture',
                'verbose_name_plural': 'Lectures',
            },
        ),
        migrations.AddField(
            model_name='messagechat',
            name='lecteurs',
            field=models.ManyToManyField(blank=True, related_name='messages_lus', through='chat.LectureMessage', to=settings.AUTH_USER_MODEL),
        ),
        migrations.AddIndex(
            model_name='messagechat',
            index=models.Index(fields=['conversation', 'date_envoi'], name='message_conv_date_idx'),
        ),
        migrations.AddConstraint(
            model_name='conversation',
            constraint=models.UniqueConstraint(condition=models.Q(('est_active', True), models.Q(('cle_paire', ''), _negated=True)), fields=('cle_paire',), name='conversation_paire_active_unique'),
        ),
        migrations.AddConstraint(
            model_name='participation',
            constraint=models.UniqueConstraint(fields=('conversation', 'utilisateur'), name='participation_unique'),
        ),
        migrations.AddConstraint(
            model_name='lecturemessage',
            constraint=models.UniqueConstraint(fields=('message', 'utilisateur'), name='lecture_unique'),
        ),
    ]

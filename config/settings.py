"""
Campus Market — settings.py
Fichier central de configuration Django
"""
import sys
from pathlib import Path
from decouple import config
from datetime import timedelta

# Racine du projet
BASE_DIR = Path(__file__).resolve().parent.parent

# True quand la suite de tests tourne (manage.py test ou pytest)
TESTING = 'test' in sys.argv[1:2] or 'pytest' in sys.modules


# ═══════════════════════════════════════════════
# SÉCURITÉ
# ═══════════════════════════════════════════════

# Clé secrète lue depuis .env (valeur par défaut réservée au développement)
SECRET_KEY = config('SECRET_KEY', default='django-insecure-campus-market-dev-only')

# True en local → affiche les erreurs détaillées
DEBUG = config('DEBUG', default=True, cast=bool)

# Hôtes autorisés à accéder au site
ALLOWED_HOSTS = ['localhost', '127.0.0.1', '0.0.0.0', 'testserver'] + config('ALLOWED_HOSTS', default='', cast=lambda v: [s.strip() for s in v.split(',') if s.strip()])


# ═══════════════════════════════════════════════
# APPLICATIONS INSTALLÉES
# ═══════════════════════════════════════════════

INSTALLED_APPS = [
    'daphne',
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # API REST
    'rest_framework',
    'rest_framework_simplejwt',
    'corsheaders',
    'django_filters',

    # WebSockets (chat, présence, notifications)
    'channels',

    # Statuts des tentatives d'achat (machine à états)
    'django_fsm',

    # Tâches planifiées (expiration des OTP)
    'django_celery_beat',

    # Nos applications Campus Market
    'apps.users',
    'apps.annonces',
    'apps.chat',
    'apps.notifications',
    'apps.achats',
]


# ═══════════════════════════════════════════════
# MIDDLEWARE
# Couches qui traitent chaque requête HTTP dans l'ordre
# ═══════════════════════════════════════════════

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'whitenoise.middleware.WhiteNoiseMiddleware',      # Fichiers statiques (admin)
    'corsheaders.middleware.CorsMiddleware',           # CORS pour les appels JS
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
    'apps.audit.middleware.AuditLogMiddleware',        # Log automatique des actions
]


# ═══════════════════════════════════════════════
# URLS & ASGI
# ═══════════════════════════════════════════════

ROOT_URLCONF = 'config.urls'

# ASGI = Daphne gère HTTP + WebSocket
ASGI_APPLICATION = 'config.asgi.application'

# Uniquement pour l'admin Django (l'interface est hors de ce dépôt)
TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]


# ═══════════════════════════════════════════════
# BASE DE DONNÉES (PostgreSQL)
# ═══════════════════════════════════════════════

# Supporte DATABASE_URL (hébergeur) ou config individuelle (local)
import dj_database_url as _dj_db_url

_db_url = config('DATABASE_URL', default='')
if TESTING:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'test_campus.sqlite3',
        }
    }
elif _db_url:
    DATABASES = {'default': _dj_db_url.parse(_db_url, conn_max_age=600)}
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME':     config('DB_NAME',     default='campus_market'),
            'USER':     config('DB_USER',     default='postgres'),
            'PASSWORD': config('DB_PASSWORD', default='postgres'),
            'HOST':     config('DB_HOST',     default='localhost'),
            'PORT':     config('DB_PORT',     default='5432'),
        }
    }

AUTH_USER_MODEL = 'users.CustomUser'


# ═══════════════════════════════════════════════
# REDIS — Cache + Sessions
# ═══════════════════════════════════════════════

REDIS_URL = config('REDIS_URL', default='redis://127.0.0.1:6379')

if TESTING:
    CACHES = {'default': {'BACKEND': 'django.core.cache.backends.locmem.LocMemCache'}}
else:
    CACHES = {
        'default': {
            'BACKEND': 'django_redis.cache.RedisCache',
            # Base Redis n°1 réservée au cache
            'LOCATION': f'{REDIS_URL}/1',
            'OPTIONS': {
                'CLIENT_CLASS': 'django_redis.client.DefaultClient',
            },
            'KEY_PREFIX': 'campus',
            'TIMEOUT': 300,
        }
    }

SESSION_ENGINE = 'django.contrib.sessions.backends.cache'
SESSION_CACHE_ALIAS = 'default'


# ═══════════════════════════════════════════════
# DJANGO CHANNELS — WebSockets (Chat + Présence + Notifications)
# Redis sert de bus pub/sub entre les processus Daphne :
# une diffusion vers un salon atteint tous ses membres,
# quel que soit le processus qui détient leur connexion.
# ═══════════════════════════════════════════════

if TESTING:
    CHANNEL_LAYERS = {'default': {'BACKEND': 'channels.layers.InMemoryChannelLayer'}}
else:
    CHANNEL_LAYERS = {
        'default': {
            'BACKEND': 'channels_redis.core.RedisChannelLayer',
            # Base Redis n°0 réservée aux WebSockets
            'CONFIG': {
                'hosts': [f'{REDIS_URL}/0'],
            },
        }
    }


# ═══════════════════════════════════════════════
# CELERY — Tâches asynchrones
# ═══════════════════════════════════════════════

# Base Redis n°2 réservée à Celery
CELERY_BROKER_URL = f'{REDIS_URL}/2'
CELERY_RESULT_BACKEND = f'{REDIS_URL}/2'
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = config('TIME_ZONE', default='UTC')
CELERY_BEAT_SCHEDULER = 'django_celery_beat.schedulers:DatabaseScheduler'
CELERY_TASK_ALWAYS_EAGER = TESTING

# Synchronisé dans la base par le DatabaseScheduler au démarrage de Beat
CELERY_BEAT_SCHEDULE = {
    'expirer-tentatives-achat': {
        'task': 'apps.achats.tasks.expirer_tentatives_perimees',
        'schedule': timedelta(minutes=5),
    },
}


# ═══════════════════════════════════════════════
# DJANGO REST FRAMEWORK
# ═══════════════════════════════════════════════

REST_FRAMEWORK = {
    # Jeton du fournisseur d'identité + Session Django (pour l'admin)
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'apps.users.authentication.IdentiteExterneAuthentication',
        'rest_framework.authentication.SessionAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'DEFAULT_FILTER_BACKENDS': [
        'django_filters.rest_framework.DjangoFilterBackend',
    ],
    'DEFAULT_PAGINATION_CLASS': 'rest_framework.pagination.PageNumberPagination',
    'PAGE_SIZE': 20,
}

# Le jeton porte l'identifiant externe (claim "uid"), pas la clé primaire
SIMPLE_JWT = {
    'ACCESS_TOKEN_LIFETIME':  timedelta(minutes=60),
    'REFRESH_TOKEN_LIFETIME': timedelta(days=7),
    'AUTH_HEADER_TYPES': ('Bearer',),
    'USER_ID_FIELD': 'uid_externe',
    'USER_ID_CLAIM': 'uid',
}

# Classe qui transforme un jeton opaque en IdentiteExterne
RESOLVEUR_IDENTITE = config('RESOLVEUR_IDENTITE', default='apps.users.identity.ResolveurJWT')


# ═══════════════════════════════════════════════
# ACHAT PAR OTP
# ═══════════════════════════════════════════════

# Durée de validité d'un code OTP
ACHAT_OTP_DUREE_MINUTES = config('ACHAT_OTP_DUREE_MINUTES', default=10, cast=int)

# Codes faux tolérés avant expiration de la tentative (0 = illimité)
ACHAT_OTP_MAX_ESSAIS = config('ACHAT_OTP_MAX_ESSAIS', default=5, cast=int)


# ═══════════════════════════════════════════════
# CORS
# ═══════════════════════════════════════════════

CORS_ALLOW_ALL_ORIGINS = True


# ═══════════════════════════════════════════════
# FICHIERS STATIQUES
# ═══════════════════════════════════════════════

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'
STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.FileSystemStorage'},
    'staticfiles': {
        'BACKEND': (
            'django.contrib.staticfiles.storage.StaticFilesStorage' if TESTING
            else 'whitenoise.storage.CompressedManifestStaticFilesStorage'
        ),
    },
}


# ═══════════════════════════════════════════════
# LOGS
# ═══════════════════════════════════════════════

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {'format': '{asctime} {levelname} {name} — {message}', 'style': '{'},
    },
    'handlers': {
        'console': {'class': 'logging.StreamHandler', 'formatter': 'simple'},
    },
    'loggers': {
        'apps': {
            'handlers': ['console'],
            'level': config('LOG_LEVEL', default='WARNING' if TESTING else 'INFO'),
        },
    },
}


# ═══════════════════════════════════════════════
# INTERNATIONALISATION
# ═══════════════════════════════════════════════

LANGUAGE_CODE = 'fr-fr'
TIME_ZONE = config('TIME_ZONE', default='UTC')
USE_I18N = True
USE_TZ = True


# ═══════════════════════════════════════════════
# DIVERS
# ═══════════════════════════════════════════════

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

"""
Django settings for texhub project with Enquiry and Quotation workflow integration.
"""
import os
from decimal import Decimal
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()  # Load environment variables before using them

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent
LOG_DIR = os.getenv('LOG_DIR', os.path.join(BASE_DIR, 'logs'))
os.makedirs(LOG_DIR, exist_ok=True)

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-texhub-development-key')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv('DEBUG', 'False').lower() in ('1', 'true', 'yes')

ALLOWED_HOSTS = [host for host in os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',') if host]

# Application definition

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    #Third Party
    'rest_framework',

    #Apps
    'core',
    'catalog',
    'enquiries',
    'quotes',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'texhub.urls'

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

WSGI_APPLICATION = 'texhub.wsgi.application'

# Database
# PostgreSQL in deployment; SQLite when DB_ENGINE is not configured (local runs, tests)
if os.getenv('DB_ENGINE'):
    DATABASES = {
        'default': {
            'ENGINE': os.getenv('DB_ENGINE'),
            'NAME': os.getenv('DB_NAME'),
            'USER': os.getenv('DB_USER'),
            'PASSWORD': os.getenv('DB_PASSWORD'),
            'HOST': os.getenv('DB_HOST'),
            'PORT': os.getenv('DB_PORT'),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }

# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]

# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'Asia/Kolkata'
USE_I18N = True
USE_TZ = True

# Static files (CSS, JavaScript, Images)
STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# =====================================
# REST API
# =====================================
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
        'rest_framework.authentication.BasicAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'core.permissions.RoleWritePermission',
    ],
    'EXCEPTION_HANDLER': 'core.api.workflow_exception_handler',
    'DEFAULT_PAGINATION_CLASS': 'rest_framework.pagination.PageNumberPagination',
    'PAGE_SIZE': 20,
}

# =====================================
# CATALOG SETTINGS
# =====================================

# Mapping of product categories to allowed units
CATEGORY_UNITS = {
    'Yarn': ['kg', 'cones'],
    'Garments': ['pcs', 'dz'],
    'Denim': ['m', 'yards', 'rolls'],
    'Greige Fabric': ['m', 'yards', 'rolls', 'kg'],
    'Finished Fabrics': ['m', 'yards', 'rolls'],
    'Fabric (Finished)': ['m', 'yards', 'rolls'],
    'Fibre': ['kg', 'bales', 'tons'],
    'Textile Farming': ['kg', 'quintal', 'bales', 'tons'],
    'Home Decoration': ['pcs', 'sets', 'm'],
    'Trims & Accessories': ['pcs', 'm', 'rolls', 'sets'],
    'Packing': ['pcs', 'kg', 'sets'],
    'Dyes & Chemicals': ['kg', 'liters', 'tons', 'drums'],
    'Machineries & Equipment': ['pcs', 'units', 'sets'],
}

CATALOG_CACHE_TIMEOUT = 300  # Seconds a product lookup stays cached

# =====================================
# QUOTATION SYSTEM SETTINGS
# =====================================
DEFAULT_QUOTATION_CURRENCY = 'INR'
DEFAULT_PAYMENT_TERMS = '30_days'
DEFAULT_TAX_RATE = Decimal('0.00')

# Attempts to obtain a unique reference number before giving up with a conflict
REFERENCE_RETRY_ATTEMPTS = 3

# =====================================
# CACHING CONFIGURATION
# =====================================
CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'texhub-catalog',
        # For production, use Redis:
        # 'BACKEND': 'django.core.cache.backends.redis.RedisCache',
        # 'LOCATION': 'redis://127.0.0.1:6379/1',
    }
}

# =====================================
# LOGGING CONFIGURATION WITH WORKFLOW TRACKING
# =====================================
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
        'simple': {
            'format': '{levelname} {message}',
            'style': '{',
        },
    },
    'filters': {
        'require_debug_true': {
            '()': 'django.utils.log.RequireDebugTrue',
        },
    },
    'handlers': {
        'console': {
            'level': 'INFO',
            'filters': ['require_debug_true'],
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
        'file': {
            'level': 'INFO',
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': os.path.join(LOG_DIR, 'texhub.log'),
            'maxBytes': 10 * 1024 * 1024,  # 10 MB
            'backupCount': 10,
            'formatter': 'verbose',
        },
        'workflow_file': {
            'level': 'INFO',
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': os.path.join(LOG_DIR, 'workflow.log'),
            'maxBytes': 10 * 1024 * 1024,  # 10 MB
            'backupCount': 10,
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'django': {
            'handlers': ['console', 'file'],
            'level': 'INFO',
            'propagate': True,
        },
        'core': {
            'handlers': ['console', 'file'],
            'level': 'INFO',
            'propagate': True,
        },
        'catalog': {
            'handlers': ['console', 'file'],
            'level': 'INFO',
            'propagate': True,
        },
        'enquiries': {
            'handlers': ['workflow_file', 'console'],
            'level': 'INFO',
            'propagate': True,
        },
        'quotes': {
            'handlers': ['workflow_file', 'console'],
            'level': 'INFO',
            'propagate': True,
        },
    },
}

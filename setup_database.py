#!/usr/bin/env python
"""
Environment Setup Script
Writes the .env file for the Tachograph Compliance backend and checks the
configured DATABASE_URL.

Usage:
    python setup_database.py          # Interactive .env setup
    python setup_database.py --check  # Verify DATABASE_URL from .env
"""

import os
import sys


def generate_secret_key():
    """Generate a new Django secret key."""
    from django.core.management.utils import get_random_secret_key
    return get_random_secret_key()


def ask(prompt, default):
    value = input(f"{prompt} [{default}]: ").strip()
    return value or default


def create_env_file():
    """Create .env file with database, storage and WTD configuration."""
    print("🔧 Tachograph Compliance - Environment Setup\n")
    print("=" * 60)

    if os.path.exists('.env'):
        response = input("\n⚠️  .env file already exists. Overwrite? (y/n): ")
        if response.lower() != 'y':
            print("❌ Setup cancelled.")
            return

    env_content = []

    print("\nDatabase: paste a PostgreSQL URL, or leave empty for SQLite (development only).")
    database_url = input("DATABASE_URL: ").strip()
    if database_url:
        env_content.append(f"DATABASE_URL={database_url}")
    else:
        print("✓ Using SQLite for development")

    secret_key = generate_secret_key()
    env_content.append(f"DJANGO_SECRET_KEY={secret_key}")
    print(f"✓ Generated secret key: {secret_key[:20]}...")

    debug = input("\nEnable DEBUG mode? (y/n) [n]: ").strip().lower()
    env_content.append(f"DJANGO_DEBUG={'True' if debug == 'y' else 'False'}")
    env_content.append(f"DJANGO_ALLOWED_HOSTS={ask('Allowed hosts', 'localhost,127.0.0.1')}")
    env_content.append(f"CORS_ALLOWED_ORIGINS={ask('CORS origins', 'http://localhost:3000,http://localhost:5173')}")

    print("\n" + "=" * 60)
    print("Tachograph file storage")
    env_content.append(f"MEDIA_ROOT={ask('Directory for uploaded tachograph files', 'media')}")
    env_content.append(f"TACHOGRAPH_DOWNLOAD_INTERVAL_DAYS={ask('Days between mandatory downloads', '28')}")
    env_content.append(f"DJANGO_LOG_LEVEL={ask('Log level', 'INFO')}")

    with open('.env', 'w') as f:
        f.write('\n'.join(env_content) + '\n')

    print("\n" + "=" * 60)
    print("✅ .env file created successfully!")
    print("\n📋 NEXT STEPS:\n")
    print("1. python manage.py migrate")
    print("2. python setup_database.py --check")
    print("3. python manage.py runserver")


def check_database_url():
    """Verify that DATABASE_URL parses and, for PostgreSQL, connects."""
    from dotenv import load_dotenv
    load_dotenv()

    database_url = os.environ.get('DATABASE_URL')
    if not database_url:
        print("DATABASE_URL not set, the backend uses SQLite (development mode)")
        return True

    import dj_database_url
    try:
        db_config = dj_database_url.parse(database_url)
    except ValueError as e:
        print(f"❌ Invalid DATABASE_URL format: {e}")
        return False

    print(f"  Engine: {db_config.get('ENGINE')}")
    print(f"  Host: {db_config.get('HOST')}:{db_config.get('PORT')}")
    print(f"  Database: {db_config.get('NAME')}")

    if 'postgres' not in database_url:
        return True

    try:
        import psycopg2
    except ImportError:
        print("⚠️  psycopg2 not installed. Run: pip install -e .[postgres]")
        return False

    try:
        conn = psycopg2.connect(database_url)
        conn.close()
    except psycopg2.Error as e:
        print(f"❌ Connection failed: {e}")
        return False

    print("✅ PostgreSQL connection successful!")
    return True


if __name__ == '__main__':
    try:
        if '--check' in sys.argv[1:]:
            sys.exit(0 if check_database_url() else 1)
        create_env_file()
    except KeyboardInterrupt:
        print("\n\n❌ Setup cancelled by user.")
        sys.exit(1)

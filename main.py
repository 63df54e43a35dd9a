"""Main entry point for Metaworks ECC - database setup and summary"""

import os
import sqlite3
import sys
from collections import Counter
from contextlib import closing

from dotenv import load_dotenv

from metaworks_ecc.ai import PROVIDER_ORDER, PROVIDER_NAMES, get_ai_status
from metaworks_ecc.models import RiskLevel
from metaworks_ecc.seed import seed_risk_register, initialize_default_users
from metaworks_ecc.storage import ComplianceStore, init_schema
from version import __version__, __application__, __description__


class SetupConfig:
    """Environment settings needed outside the web app"""

    def __init__(self):
        self.DB_PATH = os.getenv('DB_PATH', 'metaworks.db')
        self.AI_PROVIDER = os.getenv('AI_PROVIDER', 'auto')
        self.AI_MODEL = os.getenv('AI_MODEL', '')
        self.OPENAI_API_KEY = os.getenv('OPENAI_API_KEY', '')
        self.ANTHROPIC_API_KEY = os.getenv('ANTHROPIC_API_KEY', '')
        self.GOOGLE_API_KEY = os.getenv('GOOGLE_API_KEY', '')
        self.GROQ_API_KEY = os.getenv('GROQ_API_KEY', '')


def main(db_path=None):
    """Initialise the database, seed built-in data and print a summary"""
    load_dotenv()
    config = SetupConfig()
    if db_path:
        config.DB_PATH = db_path

    print("=" * 60)
    print(f"{__application__} v{__version__}")
    print(f"{__description__}")
    print("=" * 60)
    print()

    with closing(sqlite3.connect(config.DB_PATH)) as conn:
        init_schema(conn)
        store = ComplianceStore(conn)

        created = initialize_default_users(store)
        if created:
            print(f"👤 Created {created} default user accounts")
        if store.count('risk_register') == 0:
            seed_risk_register(store)

        risks = store.get_risk_register()
        users = store.list_users()

    print("📊 Compliance Dashboard")
    print("-" * 60)

    print(f"\n🔴 Risk Register ({len(risks)} total):")
    by_level = Counter(r['risk_level'] for r in risks)
    for level in reversed(list(RiskLevel)):
        print(f"  - {level.value}: {by_level.get(level.value, 0)}")

    print(f"\n👥 Users ({len(users)} total):")
    for role, count in sorted(Counter(u['role'] for u in users).items()):
        print(f"  - {role}: {count}")

    status = get_ai_status(config)
    keyed = [PROVIDER_NAMES[name] for name in PROVIDER_ORDER
             if getattr(config, f"{name.upper()}_API_KEY", '')]
    print("\n🤖 AI Providers:")
    print(f"  - Active: {status['provider']} ({status['model']})")
    print(f"  - Configured: {', '.join(keyed) if keyed else 'none (built-in templates)'}")

    print("\n" + "=" * 60)
    print(f"Database ready at {config.DB_PATH} ✨")
    print("=" * 60)

    return 0


if __name__ == "__main__":
    sys.exit(main())

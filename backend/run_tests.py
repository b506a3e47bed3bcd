# backend/run_tests.py
# Lance la suite pytest avec l'environnement de test (.env.test, sinon .env).

import os
import sys

import pytest
from dotenv import load_dotenv

HERE = os.path.dirname(os.path.abspath(__file__))

if __name__ == "__main__":
    for candidate in (".env.test", ".env"):
        env_path = os.path.join(HERE, candidate)
        if os.path.exists(env_path):
            load_dotenv(dotenv_path=env_path)
            break

    # Pas de seed ni d'index au démarrage pendant les tests
    os.environ.setdefault("SEED_ON_STARTUP", "false")

    exit_code = pytest.main([os.path.join(HERE, "tests"), "-v", *sys.argv[1:]])
    sys.exit(exit_code)

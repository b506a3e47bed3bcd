# backend/generate_secret.py
# Génère la clé de signature des jetons (JWT_SECRET_KEY) et l'écrit dans le .env du backend.

import argparse
import os
import secrets

ENV_PATH = ".env"
SECRET_KEY_NAME = "JWT_SECRET_KEY"
ANCHOR_COMMENT = "# JWT"


def generate_secret_key(bits: int = 512) -> str:
    return secrets.token_hex(bits // 8)


def read_env(path: str) -> list[str]:
    if not os.path.exists(path):
        return []
    with open(path, "r", encoding="utf-8") as f:
        return f.readlines()


def set_env_key(lines: list[str], key: str, value: str, anchor: str) -> tuple[list[str], str]:
    """Place `key=value` dans les lignes du .env.

    Returns:
        tuple[list[str], str]: Nouvelles lignes et mode d'écriture
        ("replaced", "anchored" ou "appended").
    """
    entry = f"{key}={value}\n"
    for i, line in enumerate(lines):
        if line.strip().startswith(f"{key}="):
            return lines[:i] + [entry] + lines[i + 1:], "replaced"

    for i, line in enumerate(lines):
        if line.strip() == anchor:
            return lines[: i + 1] + [entry] + lines[i + 1:], "anchored"

    prefix = [] if not lines else ["\n"]
    return lines + prefix + [f"{anchor}\n", entry], "appended"


def main() -> None:
    parser = argparse.ArgumentParser(description=f"Génère {SECRET_KEY_NAME} dans {ENV_PATH}")
    parser.add_argument("--force", action="store_true", help="Remplace une clé existante.")
    parser.add_argument("--env", default=ENV_PATH, help="Fichier .env cible.")
    args = parser.parse_args()

    lines = read_env(args.env)
    exists = any(line.strip().startswith(f"{SECRET_KEY_NAME}=") for line in lines)
    if exists and not args.force:
        print(f"🔐 Clé {SECRET_KEY_NAME} déjà définie dans {args.env}. Aucune modification (--force pour la remplacer).")
        return

    new_lines, mode = set_env_key(lines, SECRET_KEY_NAME, generate_secret_key(), ANCHOR_COMMENT)
    with open(args.env, "w", encoding="utf-8") as f:
        f.writelines(new_lines)

    messages = {
        "replaced": f"♻️ Clé {SECRET_KEY_NAME} remplacée dans {args.env}.",
        "anchored": f"✅ Clé {SECRET_KEY_NAME} ajoutée après '{ANCHOR_COMMENT}' dans {args.env}.",
        "appended": f"⚠️ Aucun marqueur '{ANCHOR_COMMENT}' trouvé. Section ajoutée à la fin de {args.env}.",
    }
    print(messages[mode])


if __name__ == "__main__":
    main()

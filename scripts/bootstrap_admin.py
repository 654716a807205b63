import os

from controle_pt.db import models
from controle_pt.db.init_db import ensure_admin
from controle_pt.db.session import SessionLocal, engine


def main() -> None:
    email = os.getenv("ADMIN_BOOTSTRAP_EMAIL")
    if not email:
        raise SystemExit("ADMIN_BOOTSTRAP_EMAIL nao definido.")
    nome = os.getenv("ADMIN_BOOTSTRAP_NOME", "Administrador")
    user_id = os.getenv("ADMIN_BOOTSTRAP_UID")

    models.Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        profile = ensure_admin(db, email, nome, user_id)
        print(f"Admin ativo: {profile.email} ({profile.id})")
    finally:
        db.close()


if __name__ == "__main__":
    main()

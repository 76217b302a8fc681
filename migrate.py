#!/usr/bin/env python3
"""
Script para gestionar migraciones de base de datos con Alembic.

Las tablas de la caja (cash_sessions, cash_counts, transfer_verifications)
y el libro de ventas (sales) se crean con `python migrate.py upgrade`; el
índice parcial que garantiza una sola caja abierta vive en la migración
inicial.

Uso:
    python migrate.py create "mensaje"   # Crear migración (autogenerate)
    python migrate.py upgrade [rev]      # Ejecutar migraciones (head por defecto)
    python migrate.py downgrade [rev]    # Rollback (-1 por defecto)
    python migrate.py sql [rev]          # Imprimir el SQL sin ejecutarlo
    python migrate.py stamp [rev]        # Marcar una base creada con create_all
    python migrate.py history | current
"""
import argparse
import sys
from pathlib import Path

# Agregar el directorio raíz al path
root_dir = Path(__file__).parent
sys.path.insert(0, str(root_dir))

from alembic.config import Config
from alembic import command
from app.core.config import settings


def get_alembic_config() -> Config:
    """Configuración de Alembic apuntando a la base de datos de la caja."""
    alembic_cfg = Config(str(root_dir / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(root_dir / "migrations"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    return alembic_cfg


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Migraciones de la base de datos de caja")
    sub = parser.add_subparsers(dest="action", required=True)

    create = sub.add_parser("create", help="Crear nueva migración")
    create.add_argument("message")

    for name, default in (("upgrade", "head"), ("downgrade", "-1"), ("sql", "head"), ("stamp", "head")):
        action = sub.add_parser(name)
        action.add_argument("revision", nargs="?", default=default)

    sub.add_parser("history", help="Ver historial")
    sub.add_parser("current", help="Ver revisión actual")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    cfg = get_alembic_config()

    if args.action == "create":
        command.revision(cfg, autogenerate=True, message=args.message)
        print(f"Migración creada: {args.message}")
    elif args.action == "upgrade":
        command.upgrade(cfg, args.revision)
        print("Migraciones ejecutadas exitosamente")
    elif args.action == "downgrade":
        command.downgrade(cfg, args.revision)
        print("Rollback ejecutado exitosamente")
    elif args.action == "sql":
        command.upgrade(cfg, args.revision, sql=True)
    elif args.action == "stamp":
        command.stamp(cfg, args.revision)
        print(f"Base de datos marcada en la revisión {args.revision}")
    elif args.action == "history":
        command.history(cfg)
    else:
        command.current(cfg)


if __name__ == "__main__":
    main()

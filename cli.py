import argparse
import json
import shutil
import sys

from algorithms import WeightConverter
from config import check_env_vars
from logging_config import configure_logging
from rest_api import MuscleGrowAPI


def _user_id(api: MuscleGrowAPI, email: str) -> str:
    user = api.users.find_by_email(email.strip().lower())
    if user is None:
        raise SystemExit(f"user not found: {email}")
    return user["id"]


def export_user(db_path: str, email: str, out_path: str) -> None:
    """Write a user's workout history to a CSV file."""
    api = MuscleGrowAPI(db_path=db_path)
    data = api.workouts.export_all_data(_user_id(api, email))
    with open(out_path, "w", encoding="utf-8", newline="") as f:
        f.write(data)


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def demo_data(db_path: str, yaml_path: str) -> None:
    """Populate the database with a demo user if missing."""
    from seed_sample_data import seed

    seed(MuscleGrowAPI(db_path=db_path, yaml_path=yaml_path))


def import_guest(db_path: str, email: str, file_path: str) -> dict:
    """Migrate a JSON dump of guest local storage into an account."""
    api = MuscleGrowAPI(db_path=db_path)
    with open(file_path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    storage = {
        k: v if isinstance(v, str) else json.dumps(v) for k, v in raw.items()
    }
    result = api.migrator.migrate(_user_id(api, email), storage)
    with open(file_path, "w", encoding="utf-8") as f:
        json.dump(storage, f, ensure_ascii=False, indent=2)
    return result


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="MuscleGrow utility commands")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="cmd", required=True)

    exp = sub.add_parser("export")
    exp.add_argument("--db", default="musclegrow.db")
    exp.add_argument("--email", required=True)
    exp.add_argument("--out", default="musclegrow_export.csv")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db", default="musclegrow.db")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db", default="musclegrow.db")

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default="musclegrow.db")
    demo.add_argument("--yaml", default="settings.yaml")

    conv = sub.add_parser("convert")
    conv.add_argument("--weight", type=float, required=True)
    conv.add_argument("--unit", choices=["kg", "lb"], required=True)

    sub.add_parser("check-env")

    imp = sub.add_parser("import-guest")
    imp.add_argument("--db", default="musclegrow.db")
    imp.add_argument("--email", required=True)
    imp.add_argument("--file", required=True)

    args = parser.parse_args(argv)
    configure_logging(args.log_level.upper())

    if args.cmd == "export":
        export_user(args.db, args.email, args.out)
    elif args.cmd == "backup":
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, args.db)
    elif args.cmd == "demo":
        demo_data(args.db, args.yaml)
    elif args.cmd == "convert":
        if args.unit == "kg":
            print(f"{args.weight} kg = {WeightConverter.kg_to_lb(args.weight)} lb")
        else:
            print(f"{args.weight} lb = {WeightConverter.lb_to_kg(args.weight)} kg")
    elif args.cmd == "check-env":
        status = check_env_vars()
        for name, ok in status.items():
            print(f"{name}: {'set' if ok else 'missing'}")
        if not all(status.values()):
            sys.exit(1)
    elif args.cmd == "import-guest":
        result = import_guest(args.db, args.email, args.file)
        print(json.dumps(result, ensure_ascii=False))


if __name__ == "__main__":
    main()

"""Apply journal database migrations."""

from pathlib import Path
import sys

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from yield_intel.db.migrate import migrate


def main() -> None:
    applied = migrate()
    if applied:
        print(f"Database migrations applied: {', '.join(str(v) for v in applied)}")
    else:
        print("Database schema up to date.")


if __name__ == "__main__":
    main()

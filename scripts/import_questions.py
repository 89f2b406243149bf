"""CLI script to load question-bank files (JSON or CSV) into the database.
Usage: python scripts/import_questions.py PATH [PATH ...] [--dry-run] [--no-dedupe]
"""
import sys
import argparse
import pathlib
from typing import List
# Ensure the repository root is on sys.path so `examprep` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from examprep.database import engine, create_db_and_tables
from examprep import services

SUPPORTED_EXT = {'.json', '.csv'}


def find_bank_files(paths: List[pathlib.Path]) -> List[pathlib.Path]:
    """Expand directories into the supported files they contain, sorted."""
    files = set()
    for p in paths:
        if p.is_dir():
            files.update(f for f in p.rglob('*') if f.is_file() and f.suffix.lower() in SUPPORTED_EXT)
        elif p.suffix.lower() in SUPPORTED_EXT:
            files.add(p)
    return sorted(files)


def main(paths: List[pathlib.Path], dry_run: bool = False, deduplicate: bool = True) -> int:
    """Import every supported file found under `paths`.

    Results are printed to stdout for a quick CLI feedback loop. Returns
    the process exit code (1 if any file failed to parse).
    """
    files = find_bank_files(paths)
    if not files:
        print('No files found to import')
        return 1
    create_db_and_tables()
    failed = 0
    with Session(engine) as session:
        svc = services.ImportService(session)
        total_created = 0
        total_skipped = 0
        for f in files:
            try:
                result = svc.import_file(f.read_bytes(), f.name, deduplicate=deduplicate, dry_run=dry_run)
            except ValueError as e:
                failed += 1
                print(f'Error importing {f}: {e}')
                continue
            total_created += result['created']
            total_skipped += result['skipped']
            print(f"Imported {f}: created {result['created']}, skipped {result['skipped']}, errors {len(result['errors'])}")
            for err in result['errors']:
                print(f"  item {err['index']}: {err['error']}")
        prefix = '[dry run] ' if dry_run else ''
        print(f'{prefix}Total created questions: {total_created}, skipped {total_skipped}')
    return 1 if failed else 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('paths', nargs='+', type=pathlib.Path, help='Files or folders to import')
    parser.add_argument('--dry-run', action='store_true', help='Validate without writing to the database')
    parser.add_argument('--no-dedupe', action='store_true', help='Import questions even if identical ones exist')
    args = parser.parse_args()
    sys.exit(main(args.paths, dry_run=args.dry_run, deduplicate=not args.no_dedupe))

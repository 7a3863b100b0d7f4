"""CLI script to bulk-import quiz documents from a local folder.
Usage: python scripts/import_quizzes.py FOLDER [--skip KEYWORD ...]
"""
import sys
import argparse
import pathlib
from typing import List, Optional
# Ensure `backend/` is on sys.path so `quizcore` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from quizcore.database import engine, create_db_and_tables
from quizcore import services
from quizcore.utils.quiz_loader import find_quiz_files


def main(folder: pathlib.Path, skip: Optional[List[str]] = None) -> int:
    """Import every quiz document found under `folder`.

    Each file is imported in its own transaction, so one bad document
    does not affect the others. Results are printed to stdout; the return
    value is the number of files that failed.
    """
    if not folder.exists():
        print(f'Folder not found: {folder}')
        return 1
    files = find_quiz_files(folder, skip_keywords=skip)
    if not files:
        print('No files found to import')
        return 0
    create_db_and_tables()
    failed = 0
    with Session(engine) as session:
        svc = services.ImportService(session)
        for f in files:
            result = svc.import_file(f.read_bytes(), f.name)
            if result.success:
                print(f'Imported {f}: quiz {result.quiz_id}, {result.questions_imported} questions, {len(result.warnings)} warnings')
                for w in result.warnings:
                    print(f'  warning: {w}')
            else:
                failed += 1
                print(f'Failed {f}:')
                for e in result.errors:
                    print(f'  error: {e}')
    print(f'Done: {len(files) - failed} imported, {failed} failed')
    return failed


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('folder', type=pathlib.Path, help='Folder to scan for *.json quiz documents')
    parser.add_argument('--skip', nargs='*', help='Skip files whose names contain any of these keywords')
    args = parser.parse_args()
    sys.exit(1 if main(args.folder, skip=args.skip) else 0)

'''
Runs the API with uvicorn.
Set TEST_MODE=True (or pass --test) to run against DATABASE_URL_TEST.
'''
import argparse
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent

if __name__ == '__main__':
    load_dotenv(PROJECT_ROOT / ".env")

    parser = argparse.ArgumentParser(description="Run the tuition scheduler API.")
    parser.add_argument("--test", action="store_true", help="Run against the test database.")
    parser.add_argument("--reload", action="store_true", help="Reload on source changes.")
    args = parser.parse_args()

    if args.test:
        os.environ['TEST_MODE'] = 'True'
        print("--- Running with LOCAL TEST DATABASE ---")

    port = int(os.environ.get('PORT', 8000))
    uvicorn.run(
        "tuition_scheduler.main:app",
        host="127.0.0.1",
        port=port,
        reload=args.reload,
        reload_dirs=[str(PROJECT_ROOT / "src")] if args.reload else None
    )

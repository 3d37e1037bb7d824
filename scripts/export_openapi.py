import argparse
import json
import os
import sys

# Ensure tunefetch package is found
sys.path.append(os.getcwd())

from tunefetch.main import app


def export_openapi(output_path: str):
    openapi_data = app.openapi()
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(openapi_data, f, indent=2, ensure_ascii=False)
    print(f"{output_path} generated ({len(openapi_data.get('paths', {}))} paths).")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Write the tunefetch OpenAPI document")
    parser.add_argument("--output", default="openapi.json", help="Destination file")
    export_openapi(parser.parse_args().output)

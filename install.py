#!/usr/bin/env python3
"""Bootstrap a chat-secretary checkout.

Usage:
    python install.py          # runtime install
    python install.py --dev    # editable install with pytest
"""

import os
import platform
import shutil
import subprocess
import sys

MIN_PYTHON = (3, 11)
CONFIG_TEMPLATES = [("config.example.yaml", "config.yaml"), (".env.example", ".env")]
DATA_SUBDIRS = ["transcripts"]


def _require_python() -> None:
    found = sys.version_info[:2]
    if found < MIN_PYTHON:
        sys.exit("chat-secretary needs Python {}.{} or newer (found {}.{})".format(*MIN_PYTHON, *found))
    print("Using Python {}.{}".format(*found))


def _venv_pip(project_dir: str) -> str:
    venv_dir = os.path.join(project_dir, ".venv")
    if os.path.isdir(venv_dir):
        print("Reusing .venv")
    else:
        print("Creating .venv ...")
        subprocess.check_call([sys.executable, "-m", "venv", venv_dir])
    scripts = "Scripts" if platform.system() == "Windows" else "bin"
    return os.path.join(venv_dir, scripts, "pip")


def _install_package(pip: str, project_dir: str, dev: bool) -> None:
    subprocess.check_call([pip, "install", "--quiet", "--upgrade", "pip"])
    target = [pip, "install", "-e", ".[dev]"] if dev else [pip, "install", "."]
    print("Installing chat-secretary" + (" (editable, with test extras)" if dev else "") + " ...")
    subprocess.check_call(target, cwd=project_dir)


def _prepare_data_dir(project_dir: str) -> None:
    """The SQLite ledger and archived transcripts live under ./data by default."""
    data_dir = os.path.join(project_dir, "data")
    for sub in DATA_SUBDIRS:
        os.makedirs(os.path.join(data_dir, sub), exist_ok=True)
    print(f"Data directory ready: {data_dir}")


def _copy_config_templates(project_dir: str) -> None:
    for template, target in CONFIG_TEMPLATES:
        template_path = os.path.join(project_dir, template)
        target_path = os.path.join(project_dir, target)
        if os.path.exists(target_path):
            print(f"Keeping existing {target}")
        elif os.path.exists(template_path):
            shutil.copy(template_path, target_path)
            print(f"Wrote {target} (from {template})")


def _print_next_steps() -> None:
    activate = r".\.venv\Scripts\activate" if platform.system() == "Windows" else "source .venv/bin/activate"
    print(
        f"""
chat-secretary is installed.

  {activate}
  # point collaborators.transcript_path in config.yaml at the exported chat JSON
  # set TASK_ORACLE_BIN in .env if tasks should be confirmed by an oracle
  python -m chat_secretary config-check
  python -m chat_secretary analyze data/chat-export.json
  python -m chat_secretary watch
  python -m chat_secretary monitor --task-id <id> --prompt "<what to do>"
"""
    )


def main() -> None:
    _require_python()
    project_dir = os.path.dirname(os.path.abspath(__file__))
    pip = _venv_pip(project_dir)
    _install_package(pip, project_dir, dev="--dev" in sys.argv)
    _prepare_data_dir(project_dir)
    _copy_config_templates(project_dir)
    _print_next_steps()


if __name__ == "__main__":
    main()

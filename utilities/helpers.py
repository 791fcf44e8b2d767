# utilities/helpers.py

import os
from datetime import datetime


def log_message(message, stream=None):
    """Log a timestamped message to the terminal or a writable stream if provided"""
    line = f"[{datetime.now().strftime('%H:%M:%S')}] {message}"
    if stream is not None and hasattr(stream, 'write'):
        stream.write(line + "\n")
    else:
        print(line)


def validate_csv_structure(file_path):
    """Validate that the CSV file appears to have importable headers"""
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            header = f.readline().lower()
    except OSError:
        return False
    has_key = 'key' in header
    has_verdict = 'tier' in header or 'rating' in header
    return has_key and 'title' in header and has_verdict


def format_entry(entry):
    """One-line rendering of a ranked entry for console output"""
    author = f" - {entry['author']}" if entry.get('author') else ''
    return f"{entry['rank_position']:>3}. [{entry['score']:>4}] {entry['title']}{author} ({entry['tier']})"


def env_path(value, default):
    """Expand ~ and env vars in a configured path, falling back to default"""
    return os.path.expandvars(os.path.expanduser(value)) if value else default

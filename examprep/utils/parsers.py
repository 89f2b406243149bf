"""File parsing utilities that convert question-bank files into a
normalized question list.

Supported input types: JSON and CSV. Parsers return a list of
dictionaries with keys: `subject_code`, `year`, `topic`,
`question_text`, `options` (label -> text), `correct_answer`,
`explanation` and `difficulty`. Validation happens in the import
service, so parsers keep whatever they find.
"""

import io
import json
import csv
from typing import List, Dict, Tuple


def parse_file_to_questions(file_bytes: bytes, filename: str) -> Tuple[List[Dict], List[Dict]]:
    """Dispatch to the appropriate parser based on file extension.

    Returns `(subjects, questions)`; CSV files never declare subjects.
    """
    name = filename.lower()
    if name.endswith('.json'):
        return parse_json(file_bytes)
    if name.endswith('.csv'):
        return [], parse_csv(file_bytes)
    raise ValueError('Unsupported file type')


def parse_json(b: bytes):
    """Parse a JSON question bank.

    Accepts either a bare array of question objects or an object with
    `subjects` and `questions` arrays (the layout of the seed data file).
    """
    data = json.loads(b.decode('utf-8'))
    subjects = []
    if isinstance(data, dict):
        subjects = [normalize_subject(s) for s in data.get('subjects') or []]
        data = data.get('questions') or []
    if not isinstance(data, list):
        raise ValueError('expected a list of questions')
    return subjects, [normalize_question(item) for item in data]


def parse_csv(b: bytes):
    """Parse a CSV with one question per row.

    Expected columns: `subject`, `year`, `topic`, `question` (or
    `question_text`), `A`..`D` (or `option_a`..`option_d`) and `correct`.
    `explanation` and `difficulty` are optional.
    """
    out = []
    sio = io.StringIO(b.decode('utf-8'))
    reader = csv.DictReader(sio)
    for row in reader:
        options = {}
        for label in ('A', 'B', 'C', 'D'):
            text = row.get(label) or row.get(f'option_{label.lower()}')
            if text and text.strip():
                options[label] = text.strip()
        out.append({
            'subject_code': _clean(row.get('subject') or row.get('subject_code')),
            'year': _coerce_int(row.get('year')),
            'topic': _clean(row.get('topic')),
            'question_text': _clean(row.get('question') or row.get('question_text')),
            'options': options,
            'correct_answer': _clean(row.get('correct') or row.get('correct_answer')),
            'explanation': _clean(row.get('explanation')) or '',
            'difficulty': _clean(row.get('difficulty')),
        })
    return out


def normalize_subject(item: dict) -> dict:
    return {
        'name': _clean(item.get('name')),
        'code': (_clean(item.get('code')) or '').upper() or None,
        'description': _clean(item.get('description')) or '',
    }


def normalize_question(item: dict) -> dict:
    """Normalize a parsed question object (maps alternative keys, including
    the camelCase ones of the seed data, to the canonical output shape).
    """
    if not isinstance(item, dict):
        return {'options': {}}
    raw_options = item.get('options') or {}
    options = {}
    # Options may be [{label, text}, ...] or {"A": "...", ...}
    if isinstance(raw_options, list):
        for opt in raw_options:
            if isinstance(opt, dict) and opt.get('label'):
                options[str(opt['label']).strip().upper()] = _clean(opt.get('text'))
    elif isinstance(raw_options, dict):
        for label, text in raw_options.items():
            options[str(label).strip().upper()] = _clean(text)
    return {
        'subject_code': _clean(item.get('subject_code') or item.get('subject')),
        'year': _coerce_int(item.get('year')),
        'topic': _clean(item.get('topic')),
        'question_text': _clean(item.get('question_text') or item.get('questionText') or item.get('question')),
        'options': options,
        'correct_answer': _clean(item.get('correct_answer') or item.get('correctAnswer')),
        'explanation': _clean(item.get('explanation')) or '',
        'difficulty': _clean(item.get('difficulty')),
    }


def _clean(val):
    if val is None:
        return None
    s = str(val).strip()
    return s or None


def _coerce_int(val):
    try:
        return int(val) if val is not None and str(val).strip() != '' else None
    except (TypeError, ValueError):
        return None

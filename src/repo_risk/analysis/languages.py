"""Extension-based language detection over attributed files."""

from collections import Counter
from collections.abc import Iterable
from pathlib import PurePosixPath

from repo_risk.models import FileOwnership

EXT_MAP: dict[str, str] = {
    ".py": "Python", ".js": "JavaScript", ".ts": "TypeScript",
    ".jsx": "React JSX", ".tsx": "React TSX", ".go": "Go",
    ".rs": "Rust", ".java": "Java", ".kt": "Kotlin",
    ".cs": "C#", ".rb": "Ruby", ".php": "PHP",
    ".swift": "Swift", ".c": "C", ".cpp": "C++",
    ".h": "C/C++ Header", ".sh": "Shell", ".yml": "YAML",
    ".yaml": "YAML", ".json": "JSON", ".toml": "TOML",
    ".md": "Markdown", ".html": "HTML", ".css": "CSS",
    ".scss": "SCSS", ".sql": "SQL", ".tf": "Terraform",
    ".dockerfile": "Docker", ".proto": "Protobuf",
}

# Not counted as "primary" unless nothing else is present.
MARKUP = {"Markdown", "JSON", "YAML", "TOML"}


def language_of(path: str) -> str | None:
    p = PurePosixPath(path)
    if p.name.lower() == "dockerfile":
        return "Docker"
    return EXT_MAP.get(p.suffix.lower())


def detect_languages(files: Iterable[FileOwnership], limit: int = 5) -> list[str]:
    """Languages of live files ranked by attributed lines."""
    weights: Counter[str] = Counter()
    for f in files:
        if not f.is_attributed:
            continue
        lang = language_of(f.path)
        if lang:
            weights[lang] += f.total_lines

    ranked = [lang for lang, _ in sorted(weights.items(), key=lambda x: (-x[1], x[0]))]
    code = [lang for lang in ranked if lang not in MARKUP]
    return (code or ranked)[:limit]

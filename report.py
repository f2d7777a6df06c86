#!/usr/bin/env python3
"""
Human-readable run summaries, printed to stdout.
"""


def format_percent(count, total):
    if count == 0 or total == 0:
        return '0.000%'
    percent = (count / total) * 100
    return '<0.001%' if percent < 0.001 else f"{percent:.3f}%"


def format_cleanup_stats(file_name, counts):
    """Lines describing one cleaned store (see store.cleanup_state counters)."""
    total = counts['total']
    removed = counts['nonPublic'] + counts['invalid']
    return [
        f"{file_name}",
        f"  Total entries        : {total}",
        f"  Valid public         : {counts['public']}",
        f"  Duplicate public IPs : {counts['duplicates']}",
        f"  Removed non-public   : {counts['nonPublic']} ({format_percent(counts['nonPublic'], total)})",
        f"  Removed invalid      : {counts['invalid']} ({format_percent(counts['invalid'], total)})",
        f"  Total removed        : {removed} ({format_percent(removed, total)})",
    ]


def format_summary(title, stats):
    """Generic key/value block, keys in insertion order."""
    width = max((len(key) for key in stats), default=0)
    lines = [f"=== {title} ==="]
    for key, value in stats.items():
        label = key.replace('_', ' ').capitalize()
        lines.append(f"  {label.ljust(width)} : {value}")
    return lines


def print_lines(lines):
    for line in lines:
        print(line)

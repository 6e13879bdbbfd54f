"""
Merge-before-write helpers.

Before a caller's view of a collection is written back, the current remote
collection is fetched and unioned with it so a write never silently drops
items another session added concurrently.
"""

from typing import Any, Dict, Iterable, List, Tuple


Item = Dict[str, Any]


def item_key(item: Item) -> str:
    """Stable identity for a collection item.

    Items with an ``id`` are keyed by it; others fall back to title plus
    due date, the pair the todo editor treats as unique.
    """
    identifier = item.get("id")
    if identifier:
        return str(identifier)
    return f"{item.get('title') or ''}|{item.get('dueDate') or ''}"


def _sort_key(item: Item) -> Tuple[int, int, str]:
    identifier = item.get("id")
    if isinstance(identifier, bool) or not identifier:
        return (2, 0, item_key(item))
    if isinstance(identifier, int):
        return (0, identifier, "")
    text = str(identifier)
    if text.isdigit():
        return (0, int(text), "")
    return (1, 0, text)


def merge_collections(local: Iterable[Item], remote: Iterable[Item]) -> List[Item]:
    """Union ``local`` and ``remote`` by ``item_key``.

    The local copy wins when both sides hold the same key, except that the
    two comment threads are combined with ``merge_comments``. The result is
    de-duplicated and sorted by id (numeric ids numerically, then other ids,
    then id-less items by key), so merging the same inputs twice gives the
    same list.
    """
    merged: Dict[str, Item] = {}
    for item in local:
        merged.setdefault(item_key(item), item)
    for item in remote:
        key = item_key(item)
        existing = merged.get(key)
        if existing is None:
            merged[key] = item
            continue
        local_comments = existing.get("comments")
        remote_comments = item.get("comments")
        if isinstance(local_comments, list) or isinstance(remote_comments, list):
            merged[key] = dict(
                existing,
                comments=merge_comments(
                    local_comments if isinstance(local_comments, list) else [],
                    remote_comments if isinstance(remote_comments, list) else [],
                ),
            )

    return sorted(merged.values(), key=_sort_key)


def merge_comments(local: Iterable[Item], remote: Iterable[Item]) -> List[Item]:
    """Combine comment threads, de-duplicated by timestamp and author, oldest first."""
    seen = set()
    merged: List[Item] = []

    # Remote first: it is the shared record
    for comment in list(remote) + list(local):
        key = f"{comment.get('createdAt')}-{comment.get('author') or 'Anonymous'}"
        if key in seen:
            continue
        seen.add(key)
        merged.append(comment)

    return sorted(merged, key=lambda comment: str(comment.get("createdAt") or ""))

"""
view_flame.py

Render an aggregated table as a collapsible tree in the terminal
using Rich, heaviest branches first.
"""

from rich import print
from rich.markup import escape
from rich.tree import Tree


def format_count(count: int) -> str:
    """Convert a sample count to a short human-friendly string."""
    if count >= 1_000_000:
        return f"{count / 1_000_000:.2f}M"
    elif count >= 1_000:
        return f"{count / 1_000:.2f}k"
    else:
        return f"{count}"


def build_tree(entries):
    # Nested dict: node → { '_value': total, 'children': {} }
    root = {'_value': 0, 'children': {}}
    for stack, value in entries:
        node = root
        node['_value'] += value
        for frame in stack.split(';'):
            children = node['children']
            if frame not in children:
                children[frame] = {'_value': 0, 'children': {}}
            node = children[frame]
            node['_value'] += value
    return root


def render(node, tree: Tree, total: int, max_depth: int = 12, min_percent: float = 1.0):
    if max_depth <= 0:
        return
    for name, child in sorted(node['children'].items(),
                              key=lambda kv: kv[1]['_value'], reverse=True):
        value = child['_value']
        pct = value / total * 100 if total else 0.0
        if pct < min_percent:
            continue
        # frame names such as Foo_[i] look like markup
        branch = tree.add(f"[bold]{escape(name)}[/] • {format_count(value)} ({pct:.1f}%)")
        render(child, branch, total, max_depth - 1, min_percent)


def preview(table, title: str, max_depth: int = 12, min_percent: float = 1.0):
    root = build_tree(table.items())
    total = root['_value']
    tree = Tree(f"[b]{title}[/] • {format_count(total)} (100%)")
    render(root, tree, total, max_depth, min_percent)
    print(tree)
    return tree

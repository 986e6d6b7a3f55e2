"""
MCC Virtual Filesystem
======================
A tiny in-memory directory tree backing the shell-ish terminal commands
(pwd, ls, cd, cat). Read-only at runtime; built once per interpreter.

Every lookup is total: a missing node comes back as None, never an error.
"""

from typing import Optional, Dict, List
from dataclasses import dataclass, field


@dataclass
class FileNode:
    """A leaf holding text content."""
    content: str = ""


@dataclass
class DirectoryNode:
    """A directory mapping child names to nodes."""
    children: Dict[str, object] = field(default_factory=dict)


EASTER_EGGS_DOC = """Mission Control — Hidden Systems

Keys:
- Konami: Toggle Matrix rain
- U: UFO fleet
- D: Paw burst
- G: Glitch header
- P: Neon pulse
- H: Hiking mode
- V: Scanlines
- B: UFO beam

Terminals:
- Map: regions, companies, goto, hq, probe
- Briefing: eggs, trigger, puzzle
"""

DEFAULT_DIRECTORIES = [
    '/bin', '/boot', '/dev', '/etc', '/home', '/usr',
    '/var', '/tmp', '/opt', '/sys', '/proc', '/docs',
]


# ─────────────────────────────────────────────────────────────────
# Path Helpers
# ─────────────────────────────────────────────────────────────────

def canonicalize(path: str) -> str:
    """Collapse '.', '..' and empty segments. Always rooted at '/'."""
    out: List[str] = []
    for part in path.split('/'):
        if not part or part == '.':
            continue
        if part == '..':
            if out:
                out.pop()
            continue
        out.append(part)
    return '/' + '/'.join(out)


def resolve_path(cwd: str, target: str) -> str:
    """Resolve target relative to cwd into a canonical absolute path."""
    if not target or target == '.':
        return canonicalize(cwd)
    if target.startswith('/'):
        return canonicalize(target)
    base = cwd if cwd.endswith('/') else cwd + '/'
    return canonicalize(base + target)


def split_path(path: str):
    """Return (parent, name) for a canonical path."""
    can = canonicalize(path)
    idx = can.rfind('/')
    parent = '/' if idx <= 0 else can[:idx]
    return parent, can[idx + 1:]


# ─────────────────────────────────────────────────────────────────
# Filesystem
# ─────────────────────────────────────────────────────────────────

class VirtualFS:
    """
    In-memory tree of DirectoryNode/FileNode.

    Population happens through add_directory/add_file while building;
    the terminal only ever reads.
    """

    def __init__(self):
        self.root = DirectoryNode()

    def add_directory(self, path: str) -> DirectoryNode:
        """Create (or walk into) every directory along path."""
        cur = self.root
        for part in canonicalize(path).split('/'):
            if not part:
                continue
            child = cur.children.get(part)
            if not isinstance(child, DirectoryNode):
                child = DirectoryNode()
                cur.children[part] = child
            cur = child
        return cur

    def add_file(self, path: str, content: str) -> FileNode:
        parent, name = split_path(path)
        node = FileNode(content)
        self.add_directory(parent).children[name] = node
        return node

    def get_node(self, path: str) -> Optional[object]:
        cur = self.root
        for part in canonicalize(path).split('/'):
            if not part:
                continue
            if not isinstance(cur, DirectoryNode) or part not in cur.children:
                return None
            cur = cur.children[part]
        return cur

    def is_directory(self, path: str) -> bool:
        return isinstance(self.get_node(path), DirectoryNode)

    def list_directory(self, path: str) -> Optional[List[str]]:
        """Sorted child names, or None if path is not a directory."""
        node = self.get_node(path)
        if not isinstance(node, DirectoryNode):
            return None
        return sorted(node.children.keys())

    def read_file(self, path: str) -> Optional[str]:
        """File content, or None if path is not a file."""
        node = self.get_node(path)
        if not isinstance(node, FileNode):
            return None
        return node.content


def create_default_fs() -> VirtualFS:
    """Build the stock console tree."""
    fs = VirtualFS()
    for path in DEFAULT_DIRECTORIES:
        fs.add_directory(path)
    fs.add_file('/docs/easter-eggs.md', EASTER_EGGS_DOC)
    fs.add_file('/README.txt', 'Welcome to Mission Control. Type help for commands.')
    fs.add_file('/secrets', 'ACCESS DENIED')
    return fs

"""
Family tree traversal over a member list fetched once.

The tree is walked depth-first from a root person. For each node the viewer
independently reveals the spouse (``marriedTo``) and the children, where the
children of a couple are everyone whose ``mom`` or ``dad`` is either partner.
Toggling visibility only changes view state; no store is queried after the
initial fetch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from muzac.db import Person

DEFAULT_ROOT_ID = "1"


def _birthday_key(person: Person) -> date:
    # Unparseable birthdays sort after every real date.
    return person.birth_date or date.max


class FamilyTree:
    def __init__(self, members: Iterable[Person]):
        self.members: list[Person] = list(members)
        self._by_id: dict[str, Person] = {}
        for member in self.members:
            self._by_id.setdefault(member.id, member)

    def get(self, member_id: Optional[str]) -> Optional[Person]:
        if not member_id:
            return None
        return self._by_id.get(member_id)

    def roots(self) -> list[Person]:
        return [member for member in self.members if member.is_root]

    def spouse_of(self, member: Person) -> Optional[Person]:
        return self.get(member.married_to)

    def children_of(self, member: Person, spouse: Optional[Person] = None) -> list[Person]:
        """Children of the member or the couple, oldest first; ties keep fetch order."""
        parent_ids = {member.id}
        if spouse is not None:
            parent_ids.add(spouse.id)
        children = [
            candidate
            for candidate in self.members
            if candidate.mom in parent_ids or candidate.dad in parent_ids
        ]
        return sorted(children, key=_birthday_key)


@dataclass
class TreeNode:
    member: Person
    spouse: Optional[Person] = None
    children: list["TreeNode"] = field(default_factory=list)
    has_spouse: bool = False
    has_children: bool = False

    def as_dict(self) -> dict:
        return {
            "member": self.member.as_dict(),
            "spouse": self.spouse.as_dict() if self.spouse else None,
            "hasSpouse": self.has_spouse,
            "hasChildren": self.has_children,
            "children": [child.as_dict() for child in self.children],
        }


class TreeView:
    """Viewer state: which nodes show their spouse and which show their children."""

    def __init__(self, tree: FamilyTree):
        self.tree = tree
        self.show_spouse: set[str] = set()
        self.show_children: set[str] = set()

    def toggle_spouse(self, member_id: str) -> bool:
        return _toggle(self.show_spouse, member_id)

    def toggle_children(self, member_id: str) -> bool:
        return _toggle(self.show_children, member_id)

    def expand_all(self) -> None:
        for member in self.tree.members:
            self.show_spouse.add(member.id)
            self.show_children.add(member.id)

    def render(self, root_id: str = DEFAULT_ROOT_ID) -> Optional[TreeNode]:
        root = self.tree.get(root_id)
        if root is None:
            return None
        return self._render(root, path=frozenset())

    def _render(self, member: Person, path: frozenset[str]) -> TreeNode:
        spouse = self.tree.spouse_of(member)
        children = self.tree.children_of(member, spouse)
        node = TreeNode(
            member=member,
            has_spouse=spouse is not None,
            has_children=bool(children),
        )
        if spouse is not None and member.id in self.show_spouse:
            node.spouse = spouse

        if member.id in self.show_children:
            # A member already on the path means cyclic data; stop there.
            path = path | {member.id}
            if spouse is not None:
                path = path | {spouse.id}
            node.children = [
                self._render(child, path) for child in children if child.id not in path
            ]
        return node


def _toggle(visible: set[str], member_id: str) -> bool:
    if member_id in visible:
        visible.discard(member_id)
        return False
    visible.add(member_id)
    return True


def describe(member: Person) -> str:
    initial = f"{member.surname[:1]}." if member.surname else ""
    label = f"{member.name} {initial}".strip()
    if member.nickname:
        label += f" ({member.nickname})"
    born = member.birth_date
    year = str(born.year) if born else "?"
    return f"{label} - {member.gender} • {year}"


def render_text(node: TreeNode, indent: int = 0) -> str:
    """Indented outline of a rendered tree, one person per line."""
    pad = "  " * indent
    line = f"{pad}{describe(node.member)}"
    if node.spouse is not None:
        line += f" ⚭ {describe(node.spouse)}"
    lines = [line]
    for child in node.children:
        lines.append(render_text(child, indent + 1))
    return "\n".join(lines)

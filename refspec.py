from dataclasses import dataclass
from typing import Optional

FORCE_MARKER = '+'
WILDCARD = '*'


class RefspecError(ValueError):
    pass


@dataclass(frozen=True)
class Refspec:
    """A `source:target` mapping between two ref namespaces.

    Either both sides carry exactly one `*` or neither does. A wildcard
    source matches any ref sharing its prefix and suffix; the matched
    segment is substituted for the `*` of the target.
    """
    source: str
    target: str
    force: bool = False

    def __post_init__(self) -> None:
        source_wildcards = self.source.count(WILDCARD)
        target_wildcards = self.target.count(WILDCARD)
        if source_wildcards > 1 or target_wildcards > 1:
            raise RefspecError(f"Refspec '{self}' has more than one wildcard per side")
        if source_wildcards != target_wildcards:
            raise RefspecError(f"Refspec '{self}' has a wildcard on one side only")
        if not self.source or not self.target:
            raise RefspecError(f"Refspec '{self}' needs both a source and a target")

    @classmethod
    def parse(cls, text: str) -> 'Refspec':
        text = text.strip()
        force = text.startswith(FORCE_MARKER)
        if force:
            text = text[len(FORCE_MARKER):]
        source, separator, target = text.partition(':')
        if not separator:
            raise RefspecError(f"Refspec '{text}' has no ':' separator")
        return cls(source, target, force)

    @property
    def is_pattern(self) -> bool:
        return WILDCARD in self.source

    def map(self, ref: str) -> Optional[str]:
        if not self.is_pattern:
            return self.target if ref == self.source else None
        prefix, _, suffix = self.source.partition(WILDCARD)
        if len(ref) < len(prefix) + len(suffix):
            return None
        if not (ref.startswith(prefix) and ref.endswith(suffix)):
            return None
        matched = ref[len(prefix):len(ref) - len(suffix)]
        if not matched:
            return None
        target_prefix, _, target_suffix = self.target.partition(WILDCARD)
        return target_prefix + matched + target_suffix

    def forced(self) -> 'Refspec':
        return Refspec(self.source, self.target, force=True)

    def __str__(self) -> str:
        marker = FORCE_MARKER if self.force else ''
        return f'{marker}{self.source}:{self.target}'


def map_ref(refspecs: tuple[Refspec, ...], ref: str) -> Optional[str]:
    # First match wins.
    for refspec in refspecs:
        mapped = refspec.map(ref)
        if mapped is not None:
            return mapped
    return None

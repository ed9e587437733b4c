from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Optional

from refspec import Refspec

logger = logging.getLogger(__name__)

TRUE = 'true'


class OptionResult(Enum):
    OK = 'ok'
    UNSUPPORTED = 'unsupported'
    ERROR = 'error'


@dataclass
class FetchOptions:
    depth: Optional[int] = None
    deepen_since: Optional[str] = None
    deepen_not: list[str] = field(default_factory=list)
    deepen_relative: bool = False
    force: bool = False
    progress: Optional[str] = None
    update_shallow: bool = False
    verbosity: Optional[str] = None

    def set_option(self, name: str, value: str) -> OptionResult:
        if name == 'depth':
            try:
                depth = int(value)
            except ValueError:
                logger.warning(f"Invalid depth '{value}'")
                return OptionResult.ERROR
            if depth < 0:
                logger.warning(f"Invalid depth '{value}'")
                return OptionResult.ERROR
            self.depth = depth
        elif name == 'deepen-since':
            self.deepen_since = value
        elif name == 'deepen-not':
            self.deepen_not.append(value)
        elif name == 'deepen-relative':
            self.deepen_relative = value == TRUE
        elif name == 'force':
            self.force = value == TRUE
        elif name == 'update-shallow':
            self.update_shallow = value == TRUE
        elif name == 'progress':
            self.progress = value
        elif name == 'verbosity':
            self.verbosity = value
        else:
            logger.warning(f"Unsupported option '{name}'")
            return OptionResult.UNSUPPORTED
        return OptionResult.OK

    def apply(self, refspec: Refspec) -> Refspec:
        return refspec.forced() if self.force else refspec

    def fetch_arguments(self) -> list[str]:
        arguments: list[str] = []
        if self.depth is not None:
            if self.deepen_relative:
                arguments.append(f'--deepen={self.depth}')
            else:
                arguments.append(f'--depth={self.depth}')
        if self.deepen_since is not None:
            arguments.append(f'--shallow-since={self.deepen_since}')
        for excluded in self.deepen_not:
            arguments.append(f'--shallow-exclude={excluded}')
        if self.update_shallow:
            arguments.append('--update-shallow')
        if self.progress is not None:
            arguments.append('--progress' if self.progress == TRUE else '--no-progress')
        arguments.extend(self._verbosity_arguments())
        return arguments

    def _verbosity_arguments(self) -> list[str]:
        if self.verbosity is None:
            return []
        try:
            level = int(self.verbosity)
        except ValueError:
            logger.warning(f"Ignoring non-numeric verbosity '{self.verbosity}'")
            return []
        if level <= 0:
            return ['--quiet']
        return ['-v'] * (level - 1)

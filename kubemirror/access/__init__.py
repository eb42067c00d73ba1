"""Resource access: read path, write path and the ResourceAccess facade."""

from kubemirror.access.reader import ReadPath
from kubemirror.access.service import ResourceAccess
from kubemirror.access.writer import WritePath

__all__ = ["ReadPath", "ResourceAccess", "WritePath"]

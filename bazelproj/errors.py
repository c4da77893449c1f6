class GenerationError(ValueError):
    """Base class for failures that abort a project generation pass."""


class LabelParseError(GenerationError):
    pass


class MissingRequiredAttribute(GenerationError):
    pass


class NamingCollision(GenerationError):
    pass


class FileReferenceConflict(GenerationError):
    pass


class InvalidPathFilter(GenerationError):
    pass


class AttributeTypeError(GenerationError):
    pass


class SnapshotError(GenerationError):
    pass

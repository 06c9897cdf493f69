class SynthesisError(Exception):
    """Base class for every failure that aborts a synthesis pass"""


class ConfigurationError(SynthesisError):
    """Unknown environment/region selector or a malformed lookup table"""


class MissingZoneError(SynthesisError):
    """A domain role points at a hosted zone with no entry in the zone table"""


class CrossRegionReferenceError(SynthesisError):
    """A regional stack needs a certificate the pinned edge pass never produced"""


class DependencyCycleError(SynthesisError):
    """Declarations cannot be put in dependency order"""


class SynthesisStateError(SynthesisError):
    """A synthesis phase was run out of order or twice"""

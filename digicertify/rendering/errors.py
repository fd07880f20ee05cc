class CaptureError(RuntimeError):
    """Raised when a certificate node cannot be rasterized."""


class SourceMissingError(CaptureError):
    """The node to capture is not mounted."""


class ZeroSizeCaptureError(CaptureError):
    """The node has no laid-out area to rasterize."""


class TaintedCaptureError(CaptureError):
    """A cross-origin asset was refused while cross-origin reads are disabled."""

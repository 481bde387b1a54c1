"""
Failure taxonomy for the detection pipeline.

Configuration-time failures (`ModelUnavailable` in strict mode,
`MalformedTensor`) propagate to the caller. Per-frame failures
(`FrameConversionFailure`, `BufferAcquisitionFailure`) are reported on the
frame's result and never stop the stream.
"""


class PipelineError(Exception):
    """Base class for detection pipeline failures."""


class ModelUnavailable(PipelineError):
    """The inference engine could not be initialized or produced no output."""


class MalformedTensor(PipelineError):
    """The model output shape does not carry the expected feature count."""


class FrameConversionFailure(PipelineError):
    """A frame's pixels could not be copied into a pooled buffer."""


class BufferAcquisitionFailure(FrameConversionFailure):
    """The buffer pool could not allocate a buffer of the requested size."""

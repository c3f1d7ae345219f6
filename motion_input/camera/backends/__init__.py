from .opencv_backend import OpenCVCaptureDevice, OpenCVStream, OpenCVVideoSink

__all__ = ["OpenCVCaptureDevice", "OpenCVStream", "OpenCVVideoSink"]

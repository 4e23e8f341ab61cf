"""
Image Registration

This module requests an automatic alignment of the right image onto the left
image from a remote registration service and applies the result. The service
answers either with a rigid transform (JSON) or with a registered image that
replaces the right side's current slice.

Inputs:
    - Full pixel arrays of both displayed images (sent as raw uint16 buffers)
    - Registration method identifier

Outputs:
    - Updated right-side offset (dx, dy) and rotation, or
    - Replaced image at the right side's current stack position
    - Loading-state notifications

Requirements:
    - numpy for pixel buffer conversion
    - urllib (standard library) for the HTTP request
"""

import json
import math
import urllib.error
import urllib.parse
import urllib.request
import uuid
from typing import Callable, Dict, Optional, Tuple, Union

import numpy as np

from core.compare_models import LEFT, RIGHT
from core.renderer_interface import ElementNotEnabledError, RenderingCollaborator
from core.viewport_state import ViewportState
from utils.debug_log import debug_log

DEFAULT_REGISTRATION_URL = "http://127.0.0.1:5000/files/registration"
DEFAULT_REGISTRATION_METHOD = "4"

TRANSFORM_KEYS = ("scale", "angle", "deltax", "deltay", "centerx", "centery")

# Above this scale the service reports the translation relative to the image centre
_CENTERED_SCALE_THRESHOLD = 1.5


class RegistrationError(Exception):
    """Raised when the registration service answers with an error."""


class RegisteredImage:
    """Image returned by the registration service in place of a transform."""

    def __init__(self, content: bytes, content_type: str):
        self.content = content
        self.content_type = content_type

    def __repr__(self) -> str:
        return f"RegisteredImage(content_type={self.content_type!r}, size={len(self.content)})"


RegistrationResult = Union[Dict[str, float], RegisteredImage]


def encode_multipart(fields: Dict[str, bytes], boundary: Optional[str] = None) -> Tuple[bytes, str]:
    """
    Encode binary form fields as multipart/form-data.

    Args:
        fields: Field name -> raw bytes (sent as application/octet-stream)
        boundary: Boundary string; random when omitted

    Returns:
        Tuple of (body, content type header value)
    """
    boundary = boundary or uuid.uuid4().hex
    lines = []
    for name, payload in fields.items():
        lines.append(f"--{boundary}\r\n".encode("ascii"))
        lines.append(
            f'Content-Disposition: form-data; name="{name}"; filename="{name}"\r\n'.encode("ascii")
        )
        lines.append(b"Content-Type: application/octet-stream\r\n\r\n")
        lines.append(payload)
        lines.append(b"\r\n")
    lines.append(f"--{boundary}--\r\n".encode("ascii"))
    return b"".join(lines), f"multipart/form-data; boundary={boundary}"


def to_uint16_buffer(pixels: np.ndarray) -> bytes:
    """Raw little-endian uint16 buffer of a pixel array (values clipped to range)."""
    array = np.clip(np.asarray(pixels, dtype=np.float64), 0, 65535)
    return np.ascontiguousarray(array.astype("<u2")).tobytes()


class RegistrationClient:
    """
    HTTP client for the registration service.

    The opener defaults to urllib.request.urlopen and can be replaced with any
    callable accepting (request, timeout=...) and returning a response context
    manager.
    """

    def __init__(self, url: str = DEFAULT_REGISTRATION_URL, timeout_s: float = 30.0,
                 opener: Optional[Callable] = None):
        self.url = url
        self.timeout_s = timeout_s
        self.opener = opener if opener is not None else urllib.request.urlopen

    def build_request(self, left_pixels: np.ndarray, right_pixels: np.ndarray,
                      method: str) -> urllib.request.Request:
        """
        Build the POST request.

        Args:
            left_pixels: 2D left image pixels
            right_pixels: 2D right image pixels
            method: Registration method identifier

        Returns:
            Prepared urllib Request
        """
        left_height, left_width = np.shape(left_pixels)[:2]
        right_height, right_width = np.shape(right_pixels)[:2]
        query = urllib.parse.urlencode({
            "lw": left_width,
            "lh": left_height,
            "rw": right_width,
            "rh": right_height,
            "method": method,
        })
        body, content_type = encode_multipart({
            "cut1": to_uint16_buffer(left_pixels),
            "cut2": to_uint16_buffer(right_pixels),
        })
        return urllib.request.Request(
            f"{self.url}?{query}",
            data=body,
            headers={"Content-Type": content_type},
            method="POST",
        )

    def request_registration(self, left_pixels: np.ndarray, right_pixels: np.ndarray,
                             method: str = DEFAULT_REGISTRATION_METHOD) -> RegistrationResult:
        """
        Ask the service to register the right image onto the left image.

        Args:
            left_pixels: 2D left image pixels
            right_pixels: 2D right image pixels
            method: Registration method identifier

        Returns:
            Transform dict with scale/angle/deltax/deltay/centerx/centery, or a
            RegisteredImage for non-JSON replies

        Raises:
            RegistrationError: Non-2xx reply
            ValueError: JSON reply that is not a complete transform
            urllib.error.URLError: Connection failure
        """
        request = self.build_request(left_pixels, right_pixels, method)
        try:
            with self.opener(request, timeout=self.timeout_s) as response:
                status = getattr(response, "status", 200)
                content_type = response.headers.get_content_type()
                payload = response.read()
        except urllib.error.HTTPError as e:
            raise RegistrationError(f"Registration service returned {e.code}: {e.reason}") from e

        if not 200 <= status < 300:
            raise RegistrationError(f"Registration service returned {status}")

        if content_type == "application/json":
            return self.parse_transform(json.loads(payload.decode("utf-8")))
        return RegisteredImage(payload, content_type)

    @staticmethod
    def parse_transform(data: object) -> Dict[str, float]:
        """
        Validate a transform reply.

        Raises:
            ValueError: If the reply is not an object or lacks a field
        """
        if not isinstance(data, dict):
            raise ValueError(f"Expected a transform object, got {type(data).__name__}")
        missing = [key for key in TRANSFORM_KEYS if key not in data]
        if missing:
            raise ValueError(f"Transform reply missing fields: {', '.join(missing)}")
        return {key: float(data[key]) for key in TRANSFORM_KEYS}


class ImageRegistration:
    """Runs a registration request and applies its result to the right side."""

    def __init__(self, renderer: RenderingCollaborator, states: Dict[str, ViewportState],
                 client: Optional[RegistrationClient] = None,
                 method: str = DEFAULT_REGISTRATION_METHOD,
                 on_loading_changed: Optional[Callable[[bool], None]] = None):
        """
        Initialize registration.

        Args:
            renderer: Rendering collaborator (pixels, stack image replacement)
            states: Side -> ViewportState map
            client: Registration service client
            method: Default registration method identifier
            on_loading_changed: Called with the loading flag on every change
        """
        self.renderer = renderer
        self.states = states
        self.client = client if client is not None else RegistrationClient()
        self.method = method
        self.on_loading_changed = on_loading_changed
        self.is_loading = False

    def select_method(self, method: str) -> None:
        self.method = method

    def _set_loading(self, loading: bool) -> None:
        self.is_loading = loading
        if self.on_loading_changed is not None:
            self.on_loading_changed(loading)

    def register_images(self) -> bool:
        """
        Request registration and apply the reply.

        Returns:
            True if a transform or image was applied; False on any failure
            (no state is mutated in that case)
        """
        right_state = self.states[RIGHT]
        index_right = right_state.current_stack_index()
        self._set_loading(True)
        try:
            left_pixels = self.renderer.get_image_pixels(LEFT)
            right_pixels = self.renderer.get_image_pixels(RIGHT)
            result = self.client.request_registration(left_pixels, right_pixels, self.method)

            if isinstance(result, RegisteredImage):
                if index_right is None:
                    print("Warning: registered image received but right stack is not loaded")
                    return False
                self.renderer.replace_stack_image(RIGHT, index_right, result)
                self.renderer.request_redraw(RIGHT)
                return True

            return self.apply_transform(result)
        except (urllib.error.URLError, RegistrationError, ValueError, ElementNotEnabledError,
                OSError) as e:
            print(f"Error registering images: {e}")
            debug_log(
                "image_registration.py:register_images",
                "registration failed",
                {"error": str(e), "method": self.method},
                hypothesis_id="registration",
            )
            return False
        finally:
            self._set_loading(False)

    def apply_transform(self, transform: Dict[str, float]) -> bool:
        """
        Write a service transform into the right side's offset and rotation.

        Args:
            transform: Dict with scale, angle (radians), deltax, deltay, centerx, centery

        Returns:
            False if the right viewport is not enabled yet
        """
        right_state = self.states[RIGHT]
        if transform["scale"] < _CENTERED_SCALE_THRESHOLD:
            target_dx = -transform["deltax"]
            target_dy = -transform["deltay"]
        else:
            target_dx = transform["centerx"] - transform["deltax"]
            target_dy = transform["centery"] - transform["deltay"]
        return right_state.translate_or_rotate(
            x=target_dx - right_state.dx,
            y=target_dy - right_state.dy,
            angle=-math.degrees(transform["angle"]),
        )

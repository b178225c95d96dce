# SPDX-License-Identifier: MIT
"""Cameras."""

import math
from typing import Any, Dict, Optional

from .enums import CameraType
from .exceptions import ModelUsageError
from .properties import LogicalChildOfRoot


class Camera(LogicalChildOfRoot):
    """A perspective or orthographic projection."""

    def __init__(self, name: Optional[str] = None):
        super().__init__(name)
        self.type = CameraType.PERSPECTIVE
        self.perspective: Optional[Dict[str, Any]] = None
        self.orthographic: Optional[Dict[str, Any]] = None

    def set_perspective(self, yfov: float, znear: float, zfar: Optional[float] = None,
                        aspect_ratio: Optional[float] = None) -> None:
        if yfov <= 0 or znear <= 0:
            raise ModelUsageError("yfov and znear must be positive")
        if zfar is not None and zfar <= znear:
            raise ModelUsageError("zfar must be greater than znear")
        self.type = CameraType.PERSPECTIVE
        self.orthographic = None
        self.perspective = {"yfov": yfov, "znear": znear}
        if zfar is not None:
            self.perspective["zfar"] = zfar
        if aspect_ratio is not None:
            self.perspective["aspectRatio"] = aspect_ratio

    def set_orthographic(self, xmag: float, ymag: float, znear: float, zfar: float) -> None:
        if znear < 0 or zfar <= znear:
            raise ModelUsageError("orthographic cameras need 0 <= znear < zfar")
        self.type = CameraType.ORTHOGRAPHIC
        self.perspective = None
        self.orthographic = {"xmag": xmag, "ymag": ymag, "znear": znear, "zfar": zfar}

    def _validate(self, result) -> None:
        block = self.perspective if self.type == CameraType.PERSPECTIVE else self.orthographic
        if block is None:
            result.add_invalid_value(self, f"is {CameraType(self.type).value} but has no projection data")
            return
        for key, value in block.items():
            if not isinstance(value, (int, float)) or not math.isfinite(value):
                result.add_invalid_value(self, f"{key} is not a finite number")

    def _serialize(self) -> Dict[str, Any]:
        data = super()._serialize()
        data["type"] = CameraType(self.type).value
        if self.perspective is not None:
            data["perspective"] = dict(self.perspective)
        if self.orthographic is not None:
            data["orthographic"] = dict(self.orthographic)
        return data

    def _deserialize(self, data: Dict[str, Any], registry) -> None:
        super()._deserialize(data, registry)
        try:
            self.type = CameraType(data.get("type", "perspective"))
        except ValueError:
            self.type = CameraType.PERSPECTIVE
        self.perspective = data.get("perspective")
        self.orthographic = data.get("orthographic")

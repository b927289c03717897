"""
FastAPI Backend for IPD Measurement Application.
Provides endpoints for per-frame IPD estimation and camera calibration.
"""

import base64
import logging
from typing import List, Optional

import cv2
import numpy as np
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ipd_service import CalibrationBusyError, frames_from_payload, get_ipd_service

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)

# Create FastAPI app
app = FastAPI(
    title="IPD Measurement API",
    description="API for measuring interpupillary distance from a calibrated webcam",
    version="1.0.0"
)

# Add CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class Base64ImageRequest(BaseModel):
    """Request with base64 encoded image."""
    image: str


class LandmarkFrameRequest(BaseModel):
    """One frame of normalized landmarks ([x, y] or [x, y, z] per point)."""
    landmarks: Optional[List[List[float]]] = None
    width: float
    height: float


class CalibrationRequest(BaseModel):
    """Frames captured while the user holds still at the reference distance."""
    frames: List[LandmarkFrameRequest]


class FixedDistanceRequest(BaseModel):
    enabled: bool


def decode_base64_image(base64_str: str) -> np.ndarray:
    """Decode base64 image string to numpy array."""
    if ',' in base64_str:
        base64_str = base64_str.split(',')[1]

    try:
        img_bytes = base64.b64decode(base64_str)
    except ValueError:
        raise ValueError("Invalid base64 payload")

    nparr = np.frombuffer(img_bytes, np.uint8)
    image = cv2.imdecode(nparr, cv2.IMREAD_COLOR)

    if image is None:
        raise ValueError("Failed to decode image")

    return image


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "IPD Measurement API"}


@app.post("/api/observe")
async def observe(request: Base64ImageRequest):
    """Detect landmarks in an image and process it as the next frame."""
    try:
        image = decode_base64_image(request.image)
        result = get_ipd_service().observe_image(image)
        return JSONResponse(content=result)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Observation failed: {str(e)}")


@app.post("/api/observe-landmarks")
async def observe_landmarks(request: LandmarkFrameRequest):
    """Process one frame of landmarks from a client-side detector."""
    try:
        landmarks = np.asarray(request.landmarks, dtype=np.float64) if request.landmarks else None
        result = get_ipd_service().observe_landmarks(landmarks, request.width, request.height)
        return JSONResponse(content=result)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Observation failed: {str(e)}")


@app.post("/api/calibrate/{kind}")
def calibrate(kind: str, request: CalibrationRequest):
    """
    Run a focal or iris calibration session over the submitted frames.

    Plain def so the session runs in the worker threadpool; a second
    request while one is running gets 409.
    """
    if kind not in ("focal", "iris"):
        raise HTTPException(status_code=400, detail=f"Unknown calibration kind: {kind}")
    try:
        frames = frames_from_payload(
            {"landmarks": f.landmarks, "width": f.width, "height": f.height}
            for f in request.frames
        )
        result = get_ipd_service().calibrate(kind, frames)
        return JSONResponse(content=result)
    except CalibrationBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Calibration failed: {str(e)}")


@app.post("/api/reset")
async def reset():
    """Forget f_px and the personal iris size."""
    return get_ipd_service().reset()


@app.post("/api/fixed-distance")
async def fixed_distance(request: FixedDistanceRequest):
    """Toggle the fixed reference distance."""
    return get_ipd_service().set_fixed_distance(request.enabled)


@app.get("/api/calibration")
async def calibration_status():
    """Current calibration constants and distance mode."""
    return get_ipd_service().status()


if __name__ == "__main__":
    import uvicorn
    print("\n" + "="*60)
    print("  IPD Measurement API Server")
    print("="*60)
    print("\n  Starting server on http://0.0.0.0:8000")
    print("  API docs: http://localhost:8000/docs")
    print("\n" + "="*60 + "\n")

    uvicorn.run(app, host="0.0.0.0", port=8000)

"""
Blink Check-in

Attendance check-in backend using:
- DeepFace (ArcFace) or the MiniFaceNet ONNX model for face embeddings
- MediaPipe face mesh for double-blink liveness
- FAISS for duplicate-enrolment search
- FastAPI for the RESTful API
"""

__version__ = "1.0.0"

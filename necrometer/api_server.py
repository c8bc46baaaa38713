# necrometer/api_server.py
import asyncio
import traceback
from contextlib import asynccontextmanager
from typing import List

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from fusion_engine.feature_schema import Detection, SceneObject, SensorSample
from necrometer.engine import NecroEngine


def create_app(engine: NecroEngine = None, drive: bool = True) -> FastAPI:
    """
    Build the HTTP surface around one engine.
    With `drive=True` the engine's scheduler runs in real time for the
    lifetime of the app; tests pass `drive=False` and advance it by hand.
    Handlers are coroutines so they run on the same loop thread as the
    scheduler and never mutate the engine mid-tick.
    """
    engine = engine or NecroEngine()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = None
        if drive:
            task = asyncio.create_task(engine.run())
            print("[API] engine loop running")
        try:
            yield
        finally:
            engine.stop()
            if task is not None:
                await asyncio.gather(task, return_exceptions=True)
            print("[API] engine stopped")

    app = FastAPI(title="Necrometer Engine API", version="1.0", lifespan=lifespan)
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def check_status():
        return {"status": "Necrometer Engine Online", "running": engine.started}

    @app.get("/state")
    async def get_state():
        try:
            return engine.snapshot()
        except Exception as e:
            raise HTTPException(status_code=500, detail={"error": str(e), "traceback": traceback.format_exc()})

    @app.post("/sensors")
    async def push_sensors(samples: List[SensorSample]):
        """Feeds raw samples in arrival order; returns the current reading."""
        for sample in samples:
            engine.ingest(sample)
        return {
            "accepted": len(samples),
            "field_reading": engine.field_reading(),
            "stability_score": engine.stability_score(),
        }

    @app.post("/scene")
    async def update_scene(objects: List[SceneObject]):
        engine.refresh_scene(objects)
        return {"objects": len(objects), "scene_version": engine.simulator.scene_version}

    @app.post("/detections")
    async def update_detections(detections: List[Detection]):
        try:
            entities = engine.sync_detections(detections)
        except Exception as e:
            raise HTTPException(status_code=500, detail={"error": str(e), "traceback": traceback.format_exc()})
        return {"entities": [e.to_dict() for e in entities]}

    @app.get("/anomalies")
    async def list_anomalies():
        current = engine.current_anomaly()
        return {
            "current": current.model_dump() if current else None,
            "log": engine.anomaly_log(),
        }

    @app.get("/field-log")
    async def get_field_log():
        return {
            "peak": engine.field_log.peak(),
            "entries": [e.model_dump() for e in engine.field_log.entries],
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("necrometer.api_server:app", host="0.0.0.0", port=8000)

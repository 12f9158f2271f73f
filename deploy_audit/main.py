from dotenv import load_dotenv

from fastapi import FastAPI

from deploy_audit.api.api_v1 import router as api_v1
from deploy_audit.core.config import settings
from deploy_audit.core.lifespan import lifespan

load_dotenv()  # Load .env variables into os.environ for libraries reading it directly


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)


@app.get("/")
def root():
    return {"message": "Hello from deploy-audit!"}


app.include_router(api_v1)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)

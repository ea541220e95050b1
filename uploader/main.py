"""robyn-uploader - upload extraction and persistence for Robyn."""

from robyn import Robyn

from uploader.api.files import router as files_router
from uploader.api.health import router as health_router
from uploader.core.logger import LogIcon, logger
from uploader.core.settings import settings as st
from uploader.middlewares.base import MiddlewareHandler
from uploader.middlewares.files import FileUploadOpenAPIMiddleware

app = Robyn(__file__)


async def prepare_upload_dir() -> None:
    st.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    logger.info("Upload directory ready", icon=LogIcon.STORAGE, path=str(st.UPLOAD_DIR))


app.startup_handler(prepare_upload_dir)

# Routers
app.include_router(health_router)
app.include_router(files_router)

# Middlewares
middlewares = MiddlewareHandler(app)
middlewares.register(FileUploadOpenAPIMiddleware())


def main() -> None:
    logger.info("Starting %s | host=%s | port=%s", st.API_NAME, st.API_HOST, st.API_PORT, icon=LogIcon.START)
    app.start(host=st.API_HOST, port=st.API_PORT)


if __name__ == "__main__":
    main()

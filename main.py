import uvicorn

from cafm.main import app  # noqa: F401  re-exported for `uvicorn main:app`

if __name__ == "__main__":
    uvicorn.run("cafm.main:app", host="0.0.0.0", port=8000, reload=True)

"""
FastAPI Main Application

mmCIF structure files for the browser viewer, fetched from RCSB PDB on
first request and cached locally
"""

import logging
from functools import lru_cache
from typing import List

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from pydantic import BaseModel

from app.config import Settings, get_settings
from app.services.pdb import InvalidIdentifier, StructureFetchError, StructureResolver
from app.util import normalize_pdb_id


SERVICE_NAME = "Structure File Service"
VERSION = "1.0.0"

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ─── FastAPI App ───────────────────────────────────────
app = FastAPI(
    title=SERVICE_NAME,
    description="Serves mmCIF files, downloading them from RCSB PDB on first request",
    version=VERSION,
)

# CORS設定（Vite開発サーバーなどフロントエンドからのアクセスを許可）
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Models ────────────────────────────────────────────
class StructureInfo(BaseModel):
    """構造情報（スタブ）"""

    id: str
    fileUrl: str
    title: str
    chains: List[str]
    format: str = "mmCIF"


# ─── Dependencies ──────────────────────────────────────
@lru_cache()
def get_resolver() -> StructureResolver:
    """Process-wide resolver so every request shares one lock registry"""
    s = get_settings()
    return StructureResolver(remote_base_url=s.remote_base_url, cache_dir=s.cache_dir)


# ─── Endpoints ─────────────────────────────────────────
@app.get("/health")
def health():
    """ヘルスチェック"""
    return {"status": "ok", "service": SERVICE_NAME, "version": VERSION}


@app.get("/api/structures/{pdb_id}", response_model=StructureInfo)
def get_structure_info(pdb_id: str, s: Settings = Depends(get_settings)):
    """
    構造情報を返す

    Does not consult the remote repository or the downloaded file; title and
    chains are placeholders.
    """
    pid = normalize_pdb_id(pdb_id)
    return StructureInfo(
        id=pid,
        fileUrl=f"{s.public_base_url}/api/structures/{pid}/file",
        title=f"Example structure {pid}",
        chains=["A", "B"],
        format="mmCIF",
    )


@app.get("/api/structures/{pdb_id}/file")
def get_structure_file(
    pdb_id: str, resolver: StructureResolver = Depends(get_resolver)
):
    """
    mmCIFファイルを返す（未キャッシュならRCSBからダウンロード）

    Served as plain text, inline and uncached, so the viewer can load it
    directly.
    """
    try:
        path = resolver.resolve(pdb_id)
    except InvalidIdentifier as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StructureFetchError as e:
        logger.error("Could not serve %s: %s", e.pdb_id, e)
        raise HTTPException(
            status_code=500, detail=f"Failed to load structure {e.pdb_id}"
        )

    return FileResponse(
        path,
        media_type="text/plain",
        headers={"Content-Disposition": "inline", "Cache-Control": "no-cache"},
    )


@app.get("/")
def root():
    """ルートエンドポイント"""
    return {
        "service": SERVICE_NAME,
        "version": VERSION,
        "description": "mmCIF structure files with on-demand download and local cache",
        "endpoints": {
            "/health": "ヘルスチェック",
            "/api/structures/{id}": "構造情報（スタブ）",
            "/api/structures/{id}/file": "mmCIFファイル",
            "/docs": "API仕様書（Swagger UI）",
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)

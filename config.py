
import os
from dotenv import load_dotenv
load_dotenv()

MIB = 1024 * 1024


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///pipeline.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local")
    LOCAL_STORAGE_DIR = os.getenv("LOCAL_STORAGE_DIR", "./storage")
    MEDIA_ROOT = os.getenv("MEDIA_ROOT", "./media")
    TUSD_UPLOAD_DIR = os.getenv("TUSD_UPLOAD_DIR", "./tusd-data")
    UPLOAD_TUS_BASE_URL = os.getenv("UPLOAD_TUS_BASE_URL", "http://localhost:1080/files")
    S3_ENDPOINT = os.getenv("S3_ENDPOINT")
    S3_REGION = os.getenv("S3_REGION")
    S3_BUCKET = os.getenv("S3_BUCKET")
    S3_ACCESS_KEY = os.getenv("S3_ACCESS_KEY")
    S3_SECRET_KEY = os.getenv("S3_SECRET_KEY")
    S3_PUBLIC_BASE_URL = os.getenv("S3_PUBLIC_BASE_URL")
    MULTIPART_MIN_PART_SIZE = int(os.getenv("MULTIPART_MIN_PART_SIZE", 5 * MIB))
    MULTIPART_DEFAULT_PART_SIZE = int(os.getenv("MULTIPART_DEFAULT_PART_SIZE", 8 * MIB))
    PRESIGN_EXPIRES = int(os.getenv("PRESIGN_EXPIRES", 60 * 15))
    JOB_MAX_ATTEMPTS = int(os.getenv("JOB_MAX_ATTEMPTS", 3))
    JOB_ERROR_MAX_CHARS = int(os.getenv("JOB_ERROR_MAX_CHARS", 8000))
    WORKER_POLL_INTERVAL = float(os.getenv("WORKER_POLL_INTERVAL", 1.5))
    WORKER_TYPES = os.getenv("WORKER_TYPES", "transcode,asr,export")
    FFMPEG_BIN = os.getenv("FFMPEG_BIN", "ffmpeg")
    FFPROBE_BIN = os.getenv("FFPROBE_BIN", "ffprobe")
    FFMPEG_TIMEOUT = int(os.getenv("FFMPEG_TIMEOUT", 3600))
    ASR_PROVIDER = os.getenv("ASR_PROVIDER", "placeholder")
    DEEPGRAM_API_KEY = os.getenv("DEEPGRAM_API_KEY")
    DEEPGRAM_OPTIONS = {"punctuate": True, "utterances": True, "diarize": True}
    DG_WORD_GAP_THRESHOLD = float(os.getenv("DG_WORD_GAP_THRESHOLD", 0.35))

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models import FormatDescriptor, Job, VideoMetadata


class AnalyzeRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str = Field(min_length=1)
    platform: str = "youtube"


class ConvertRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Optional[str] = None
    format: Optional[str] = Field(default=None, alias="itag")
    url: Optional[str] = None
    note: Optional[str] = None


class VideoOut(BaseModel):
    title: Optional[str] = None
    duration: Optional[int] = None
    author: Optional[str] = None
    thumbnails: List[str] = []

    @classmethod
    def from_metadata(cls, video: VideoMetadata) -> "VideoOut":
        return cls(title=video.title, duration=video.duration, author=video.author, thumbnails=list(video.thumbnails))


class FormatOut(BaseModel):
    formatKey: str
    mimeType: str
    container: str
    qualityLabel: str
    hasVideo: bool
    hasAudio: bool
    approxSize: Optional[int] = None

    @classmethod
    def from_descriptor(cls, fmt: FormatDescriptor) -> "FormatOut":
        return cls(
            formatKey=fmt.format_key,
            mimeType=fmt.mime_type,
            container=fmt.container,
            qualityLabel=fmt.quality_label,
            hasVideo=fmt.has_video,
            hasAudio=fmt.has_audio,
            approxSize=fmt.approx_size,
        )


class AnalyzeResponse(BaseModel):
    status: Literal["ok"] = "ok"
    id: str
    video: VideoOut
    formats: List[FormatOut]

    @classmethod
    def from_job(cls, job: Job) -> "AnalyzeResponse":
        return cls(
            id=job.id,
            video=VideoOut.from_metadata(job.video),
            formats=[FormatOut.from_descriptor(f) for f in job.formats],
        )


class ConvertResponse(BaseModel):
    status: Literal["success"] = "success"
    downloadUrl: str
    itag: str


class StatusResponse(BaseModel):
    status: Literal["success"] = "success"
    result: str


class ErrorResponse(BaseModel):
    status: Literal[False] = False
    error: str

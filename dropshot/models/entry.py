from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from sqlalchemy.sql import func
from dropshot.core.database import Base


class Entry(Base):
    __tablename__ = "entries"

    name = Column(String(512), primary_key=True)
    url = Column(String, default="")
    redirect = Column(Boolean, default=False)
    filename = Column(String, default="")
    content_type = Column(String, default="")
    creation = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        index=True
    )
    owner_token = Column(String(64), default="", index=True)

    access_redirect_on_deny = Column(String(512), default="")
    access_blacklist = Column(Text, default="")
    access_blacklist_count = Column(Integer, default=0, nullable=False)
    access_expire = Column(Boolean, default=False, nullable=False)
    access_expire_count = Column(Integer, default=0, nullable=False)
    access_count = Column(Integer, default=0, nullable=False)
    access_train = Column(Boolean, default=False, nullable=False)

    @property
    def is_file(self) -> bool:
        return not self.url

    def __repr__(self) -> str:
        kind = "file" if self.is_file else ("redirect" if self.redirect else "proxy")
        access = str(self.access_count or 0)
        if self.access_expire:
            access += f"/{self.access_expire_count}"
        return f"<Entry(name={self.name!r}, {kind}, access={access})>"

from sqlalchemy import String, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.database import Base


class Team(Base):
    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    short_name: Mapped[str] = mapped_column(String(5))  # e.g., "RCC", "HCC"

    # Club record
    matches_played: Mapped[int] = mapped_column(Integer, default=0)
    wins: Mapped[int] = mapped_column(Integer, default=0)
    losses: Mapped[int] = mapped_column(Integer, default=0)
    no_results: Mapped[int] = mapped_column(Integer, default=0)

    # Relationships
    players: Mapped[list["Player"]] = relationship("Player", back_populates="team")

    @property
    def squad_size(self) -> int:
        return len(self.players)

    def __repr__(self):
        return f"<Team {self.name} ({self.short_name})>"

# src/changegraph/demo.py
"""Demo aggregate for the `changegraph demo` command.

DemoEntity is the aggregate root. It owns InnerEntity children (delete
cascade), embeds a PriceTag value object (composite), links OtherEntity
through the DemoEntityOtherEntity association object, and references
another aggregate root, OtherAggregateRoot.

run_scenario() seeds the aggregate, commits, then leaves a pending change
set on the session: rename the root, add/remove/rename owned children,
replace the value object, and swap one association for another.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import Engine, ForeignKey, Numeric, String, Uuid, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, composite, mapped_column, relationship

from changegraph.core.config import DatabaseSettings
from changegraph.providers.sqlalchemy import AggregateRoot


class Base(DeclarativeBase):
    pass


class Identified:
    """Client-assigned UUID primary key.

    Keys are assigned on construction so pending entities can be audited
    before the first flush.
    """

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)

    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("id", uuid.uuid4())
        super().__init__(**kwargs)


@dataclass(frozen=True)
class PriceTag:
    name: str
    price: Decimal


class OtherAggregateRoot(AggregateRoot, Identified, Base):
    __tablename__ = "other_aggregate_roots"

    name: Mapped[str] = mapped_column(String(100), default="")
    demo_entities: Mapped[list[DemoEntity]] = relationship(back_populates="owner")


class DemoEntity(AggregateRoot, Identified, Base):
    __tablename__ = "demo_entities"

    name: Mapped[str] = mapped_column(String(100), default="")
    owner_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("other_aggregate_roots.id"))
    value_object: Mapped[PriceTag] = composite(
        mapped_column("value_object_name", String(100), nullable=True),
        mapped_column("value_object_price", Numeric(10, 2), nullable=True),
    )

    owner: Mapped[OtherAggregateRoot | None] = relationship(back_populates="demo_entities")
    inner_entities: Mapped[list[InnerEntity]] = relationship(
        back_populates="demo_entity",
        cascade="all, delete-orphan",
    )
    other_entities: Mapped[list[DemoEntityOtherEntity]] = relationship(
        back_populates="demo_entity",
        cascade="all, delete-orphan",
    )


class InnerEntity(Identified, Base):
    __tablename__ = "inner_entities"

    name: Mapped[str] = mapped_column(String(100), default="")
    quantity: Mapped[int] = mapped_column(default=0)
    demo_entity_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("demo_entities.id"))

    demo_entity: Mapped[DemoEntity] = relationship(back_populates="inner_entities")


class OtherEntity(Identified, Base):
    __tablename__ = "other_entities"

    name: Mapped[str] = mapped_column(String(100), default="")
    demo_entities: Mapped[list[DemoEntityOtherEntity]] = relationship(back_populates="other_entity")


class DemoEntityOtherEntity(Base):
    """Join row between DemoEntity and OtherEntity, keyed by both FKs."""

    __tablename__ = "demo_entity_other_entities"

    demo_entity_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("demo_entities.id"), primary_key=True)
    other_entity_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("other_entities.id"), primary_key=True)

    demo_entity: Mapped[DemoEntity] = relationship(back_populates="other_entities")
    other_entity: Mapped[OtherEntity] = relationship(back_populates="demo_entities")


def create_demo_engine(settings: DatabaseSettings) -> Engine:
    """Engine for settings.url with the demo schema created."""
    engine = create_engine(settings.url, echo=settings.echo)
    Base.metadata.create_all(engine)
    return engine


@dataclass
class Scenario:
    """Handles to the demo entities, for callers that want to inspect them."""

    root: DemoEntity
    added_inner: InnerEntity
    removed_inner: InnerEntity
    renamed_inner: InnerEntity
    unlinked: OtherEntity
    linked: OtherEntity


def run_scenario(session: Session) -> Scenario:
    """Seed and commit the demo aggregate, then stage the demo changes.

    The session must use expire_on_commit=False so committed values stay
    loaded and old values are known when they change.
    """
    owner = OtherAggregateRoot(name="Owner")
    unlinked = OtherEntity(name="Other1")
    linked = OtherEntity(name="Other2")
    removed_inner = InnerEntity(name="Inner1", quantity=1)
    renamed_inner = InnerEntity(name="Inner2", quantity=2)
    root = DemoEntity(
        name="Initial",
        owner=owner,
        value_object=PriceTag("ValueObject1", Decimal("1.00")),
        inner_entities=[removed_inner, renamed_inner],
        other_entities=[DemoEntityOtherEntity(other_entity=unlinked)],
    )
    session.add_all([root, linked])
    session.commit()

    root.name = "Changed"
    added_inner = InnerEntity(name="Inner3", quantity=3)
    root.inner_entities.append(added_inner)
    root.inner_entities.remove(removed_inner)
    renamed_inner.name = "ModifiedInner"
    root.value_object = PriceTag("ValueObject2", Decimal("2.00"))
    root.other_entities.remove(root.other_entities[0])
    root.other_entities.append(DemoEntityOtherEntity(other_entity=linked))

    return Scenario(
        root=root,
        added_inner=added_inner,
        removed_inner=removed_inner,
        renamed_inner=renamed_inner,
        unlinked=unlinked,
        linked=linked,
    )

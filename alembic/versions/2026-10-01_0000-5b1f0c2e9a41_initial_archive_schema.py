"""initial_archive_schema

Revision ID: 5b1f0c2e9a41
Revises:
Create Date: 2026-10-01 00:00:00.000000

Creates the transcript archive:
1. channels, videos, transcripts
2. tags + video_tags join
3. transcript_chunks with pgvector embeddings
4. ingestion_logs, error_reports

Plus the search indexes:
- HNSW index for cosine nearest-neighbour search on chunk embeddings
- GIN full-text indexes matching the expressions the lexical search uses
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5b1f0c2e9a41'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EMBEDDING_DIMENSION = 384


def timestamps() -> list[sa.Column]:
    return [
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='Auto-incrementing primary key'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was created (UTC)'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was last updated (UTC)'),
    ]


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS vector')

    # ================================
    # channels
    # ================================
    op.create_table(
        'channels',
        *timestamps(),
        sa.Column('youtube_id', sa.String(length=50), nullable=False, comment='YouTube channel ID (UC...)'),
        sa.Column('name', sa.String(length=255), nullable=False, comment='Display name'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('thumbnail_url', sa.String(length=500), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True, comment='Last successful channel-level sync'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_channels')),
        sa.UniqueConstraint('youtube_id', name=op.f('uq_channels_youtube_id')),
    )

    # ================================
    # videos
    # ================================
    op.create_table(
        'videos',
        *timestamps(),
        sa.Column('youtube_id', sa.String(length=50), nullable=False, comment='YouTube video ID'),
        sa.Column('channel_id', sa.Integer(), nullable=True),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True, comment='When the video was published upstream (UTC)'),
        sa.Column('duration_seconds', sa.Integer(), nullable=True),
        sa.Column('thumbnail_url', sa.String(length=500), nullable=True),
        sa.Column('view_count', sa.BigInteger(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.ForeignKeyConstraint(['channel_id'], ['channels.id'], name=op.f('fk_videos_channel_id_channels'), ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_videos')),
        sa.UniqueConstraint('youtube_id', name=op.f('uq_videos_youtube_id')),
    )
    op.create_index('ix_videos_channel_id', 'videos', ['channel_id'])
    op.create_index('ix_videos_published_at', 'videos', ['published_at'])
    op.create_index('ix_videos_status', 'videos', ['status'])

    # Same expression as the lexical title/description weighting
    op.execute("""
        CREATE INDEX ix_videos_title_description_fts
        ON videos
        USING gin((
            setweight(to_tsvector('english', coalesce(title, '')), 'A') ||
            setweight(to_tsvector('english', coalesce(description, '')), 'B')
        ))
    """)

    # ================================
    # transcripts
    # ================================
    op.create_table(
        'transcripts',
        *timestamps(),
        sa.Column('video_id', sa.Integer(), nullable=False),
        sa.Column('raw_text', sa.Text(), nullable=True),
        sa.Column('cleaned_text', sa.Text(), nullable=True),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('segments', postgresql.JSONB(astext_type=sa.Text()), nullable=True, comment='Timed segments: [{start, end, text}]'),
        sa.Column('source', sa.String(length=20), nullable=True),
        sa.Column('processing_status', sa.String(length=20), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['video_id'], ['videos.id'], name=op.f('fk_transcripts_video_id_videos'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_transcripts')),
        sa.UniqueConstraint('video_id', name=op.f('uq_transcripts_video_id')),
    )
    op.create_index('ix_transcripts_processing_status', 'transcripts', ['processing_status'])

    op.execute("""
        CREATE INDEX ix_transcripts_raw_text_fts
        ON transcripts
        USING gin(to_tsvector('english', coalesce(raw_text, '')))
    """)

    # ================================
    # tags
    # ================================
    op.create_table(
        'tags',
        *timestamps(),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_tags')),
        sa.UniqueConstraint('name', name=op.f('uq_tags_name')),
    )

    op.create_table(
        'video_tags',
        sa.Column('video_id', sa.Integer(), nullable=False),
        sa.Column('tag_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['video_id'], ['videos.id'], name=op.f('fk_video_tags_video_id_videos'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tag_id'], ['tags.id'], name=op.f('fk_video_tags_tag_id_tags'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('video_id', 'tag_id', name=op.f('pk_video_tags')),
    )
    op.create_index('ix_video_tags_tag_id', 'video_tags', ['tag_id'])

    # ================================
    # transcript_chunks
    # ================================
    op.create_table(
        'transcript_chunks',
        *timestamps(),
        sa.Column('video_id', sa.Integer(), nullable=False),
        sa.Column('chunk_index', sa.Integer(), nullable=False, comment='Order of this chunk within the video (0-indexed)'),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('start_time', sa.Float(), nullable=True),
        sa.Column('end_time', sa.Float(), nullable=True),
        sa.Column('embedding', Vector(EMBEDDING_DIMENSION), nullable=False),
        sa.ForeignKeyConstraint(['video_id'], ['videos.id'], name=op.f('fk_transcript_chunks_video_id_videos'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_transcript_chunks')),
        sa.UniqueConstraint('video_id', 'chunk_index', name='uq_transcript_chunks_video_chunk_index'),
    )
    op.create_index('ix_transcript_chunks_video_id', 'transcript_chunks', ['video_id'])

    # m=16 (max connections per layer), ef_construction=64 (quality during build)
    op.execute("""
        CREATE INDEX ix_transcript_chunks_embedding_hnsw
        ON transcript_chunks
        USING hnsw (embedding vector_cosine_ops)
        WITH (m = 16, ef_construction = 64)
    """)

    # ================================
    # ingestion_logs, error_reports
    # ================================
    op.create_table(
        'ingestion_logs',
        *timestamps(),
        sa.Column('video_id', sa.Integer(), nullable=True),
        sa.Column('step', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('details', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.ForeignKeyConstraint(['video_id'], ['videos.id'], name=op.f('fk_ingestion_logs_video_id_videos'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_ingestion_logs')),
    )
    op.create_index('ix_ingestion_logs_video_id', 'ingestion_logs', ['video_id'])

    op.create_table(
        'error_reports',
        *timestamps(),
        sa.Column('video_id', sa.Integer(), nullable=False),
        sa.Column('report_type', sa.String(length=20), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('timestamp_seconds', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.ForeignKeyConstraint(['video_id'], ['videos.id'], name=op.f('fk_error_reports_video_id_videos'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_error_reports')),
    )
    op.create_index('ix_error_reports_video_id', 'error_reports', ['video_id'])


def downgrade() -> None:
    op.drop_table('error_reports')
    op.drop_table('ingestion_logs')
    op.execute('DROP INDEX IF EXISTS ix_transcript_chunks_embedding_hnsw')
    op.drop_table('transcript_chunks')
    op.drop_table('video_tags')
    op.drop_table('tags')
    op.execute('DROP INDEX IF EXISTS ix_transcripts_raw_text_fts')
    op.drop_table('transcripts')
    op.execute('DROP INDEX IF EXISTS ix_videos_title_description_fts')
    op.drop_table('videos')
    op.drop_table('channels')

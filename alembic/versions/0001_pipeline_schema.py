"""pipeline schema: recordings, tracks, uploads, jobs, exports, transcript segments

Revision ID: 0001_pipeline_schema
Revises:
Create Date: 2025-11-18 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_pipeline_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        'recordings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(255)),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft'),
        *_timestamps(),
    )
    op.create_table(
        'tracks',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('recording_id', sa.Integer(), sa.ForeignKey('recordings.id'), nullable=False),
        sa.Column('participant_id', sa.String(64), nullable=False),
        sa.Column('kind', sa.String(10), nullable=False),
        sa.Column('state', sa.String(20), nullable=False, server_default='recording'),
        sa.Column('storage_key_raw', sa.String(512)),
        sa.Column('storage_key_final', sa.String(512)),
        sa.Column('codec', sa.String(64)),
        sa.Column('duration_ms', sa.Integer()),
        sa.Column('processed_at', sa.DateTime()),
        *_timestamps(),
    )
    op.create_index('ix_tracks_recording_id', 'tracks', ['recording_id'])

    op.create_table(
        'uploads',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('track_id', sa.Integer(), sa.ForeignKey('tracks.id'), nullable=False, unique=True),
        sa.Column('protocol', sa.String(20), nullable=False),
        sa.Column('bytes_received', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('state', sa.String(20), nullable=False, server_default='in_progress'),
        sa.Column('storage_bucket', sa.String(255)),
        sa.Column('object_key', sa.String(512)),
        sa.Column('multipart_id', sa.String(1024)),
        sa.Column('part_size', sa.Integer()),
        sa.Column('expected_size', sa.BigInteger()),
        sa.Column('parts_json', sa.JSON()),
        *_timestamps(),
    )
    op.create_index('idx_upload_state_updated', 'uploads', ['state', 'updated_at'])

    op.create_table(
        'upload_external_session_map',
        sa.Column('upload_id', sa.Integer(), sa.ForeignKey('uploads.id'), primary_key=True),
        sa.Column('external_session_id', sa.String(255), nullable=False, unique=True),
        *_timestamps(),
    )

    op.create_table(
        'jobs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('recording_id', sa.Integer(), sa.ForeignKey('recordings.id'), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('payload', sa.JSON()),
        sa.Column('state', sa.String(20), nullable=False, server_default='queued'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('started_at', sa.DateTime()),
        sa.Column('finished_at', sa.DateTime()),
    )
    op.create_index('ix_jobs_state', 'jobs', ['state'])
    op.create_index('ix_jobs_recording_id', 'jobs', ['recording_id'])

    op.create_table(
        'export_artifacts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('recording_id', sa.Integer(), sa.ForeignKey('recordings.id'), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('state', sa.String(20), nullable=False, server_default='queued'),
        sa.Column('storage_key', sa.String(512)),
        sa.Column('last_error', sa.Text()),
        *_timestamps(),
    )
    op.create_index('ix_export_artifacts_recording_id', 'export_artifacts', ['recording_id'])

    op.create_table(
        'transcript_segments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('recording_id', sa.Integer(), sa.ForeignKey('recordings.id'), nullable=False),
        sa.Column('track_id', sa.Integer(), sa.ForeignKey('tracks.id')),
        sa.Column('start_ms', sa.Integer(), nullable=False),
        sa.Column('end_ms', sa.Integer(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('speaker', sa.String(64)),
        sa.Column('confidence', sa.Float()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_transcript_segments_recording_id', 'transcript_segments', ['recording_id'])
    op.create_index('ix_transcript_segments_track_id', 'transcript_segments', ['track_id'])


def downgrade():
    op.drop_table('transcript_segments')
    op.drop_table('export_artifacts')
    op.drop_table('jobs')
    op.drop_table('upload_external_session_map')
    op.drop_table('uploads')
    op.drop_table('tracks')
    op.drop_table('recordings')

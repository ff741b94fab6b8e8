import numpy as np

from boids.core.camera import Camera
from boids.utils.visualizer import colorize_frame, get_mvp_matrix, look_at, perspective

from conftest import small_config


def test_look_at_is_orthonormal():
    eye = np.array([2.0, 1.0, 3.0], dtype=np.float32)
    view = look_at(eye, np.zeros(3, dtype=np.float32), np.array([0, 1, 0], dtype=np.float32))

    rot = view[:3, :3]
    np.testing.assert_allclose(rot @ rot.T, np.eye(3), atol=1e-5)
    # the eye maps to the origin of view space
    np.testing.assert_allclose(view @ np.append(eye, 1.0), [0, 0, 0, 1], atol=1e-5)


def test_origin_projects_to_screen_center():
    cfg = small_config()
    mvp = get_mvp_matrix(0, cfg)
    clip = mvp @ np.array([0.0, 0.0, 0.0, 1.0])

    assert clip[3] > 0
    assert abs(clip[0] / clip[3]) < 1e-5


def test_perspective_shape():
    proj = perspective(60.0, 1.0, 0.1, 10.0)
    assert proj.shape == (4, 4)
    assert proj[3, 2] == -1.0


def test_colorize_frame_range():
    grid = np.zeros((8, 8), dtype=np.float32)
    grid[2, 3] = 5.0
    grid[4, 4] = 0.5

    frame = colorize_frame(grid)

    assert frame.shape == (8, 8, 3)
    assert frame.min() >= 0.0 and frame.max() <= 1.0
    np.testing.assert_allclose(frame[2, 3], 1.0)
    np.testing.assert_array_equal(frame[0, 0], 0.0)


def test_capture_renders_exported_positions(make_engine):
    cfg = small_config()
    engine = make_engine(cfg)
    camera = Camera(1, cfg.RES, cfg)

    vbo_pos, _ = engine.copy_to_vbo()
    frame = camera.capture(0, vbo_pos, cfg.N_BOIDS)

    assert frame.shape == (cfg.RES, cfg.RES, 3)
    assert np.asarray(camera.grid_d).sum() > 0
    assert np.asarray(frame).max() > 0


def test_run_fills_video_buffer_and_writes_frames(make_engine, tmp_path):
    cfg = small_config(N_BOIDS=24, OUTPUT_DIR=str(tmp_path))
    engine = make_engine(cfg)
    engine.camera = Camera(2, cfg.RES, cfg)

    engine.run(n_steps=2)

    assert engine.camera.video_buffer.any()
    engine.camera.get_frames()
    assert sorted(p.name for p in tmp_path.iterdir()) == ["frame_0000.png", "frame_0001.png"]

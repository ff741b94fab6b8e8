import os
import subprocess
import numpy as np
from tqdm import tqdm
from PIL import Image
from boids.kernels.render_kernels import render_density
from boids.utils.backend import get_array_module
from boids.utils.visualizer import get_mvp_matrix, colorize_frame


class Camera:
    def __init__(self, n_steps, resolution, config):

        """
        Class to handle the offline rendering of the flock.
        - capture(args) to generate a frame from an exported position buffer
        - get_frames() to write the frames to disk
        - make_video() simple execution of ffmpeg to make a video from frames.

        :param n_steps: int, number of simulation steps (frames)
        :param resolution: int, resolution of the render (res x res)
        :param config: Object storing constants
        """

        self.config = config
        self.n = n_steps
        self.res = resolution
        self.xp = get_array_module()
        self.video_buffer = np.zeros((n_steps, resolution, resolution, 3), dtype=np.uint8)
        self.grid_d = self.xp.zeros((resolution, resolution), dtype=self.xp.float32)

    def capture(self, step, vbo_pos, n_boids):

        """
        Capture a frame

        Param:

        :param step: int, current step
        :vbo_pos : DeviceArray, flat position buffer from BoidsEngine.copy_to_vbo()
        :n_boids : int, number of boids in the buffer
        """

        self.grid_d.fill(0)

        mvp = self.xp.asarray(get_mvp_matrix(step, self.config))

        tpb = self.config.TPB
        render_density[(n_boids + tpb - 1) // tpb, tpb](vbo_pos, self.grid_d, mvp, self.res, n_boids)

        return colorize_frame(self.grid_d)

    def get_frames(self):
        """
        Writes the frames stored in the video buffer to the disk.
        """

        os.makedirs(self.config.OUTPUT_DIR, exist_ok=True)
        for i in tqdm(range(self.n)):
            Image.fromarray(self.video_buffer[i]).save(f"{self.config.OUTPUT_DIR}/frame_{i:04d}.png")

    def make_video(self):

        """
        Generates video using ffmpeg
        """

        subprocess.run(['ffmpeg', '-y',
                        '-loglevel', 'warning',
                        '-framerate', '60',
                        '-i', f'{self.config.OUTPUT_DIR}/frame_%04d.png',
                        '-c:v', 'libx264',
                        '-pix_fmt', 'yuv420p', self.config.VIDEO_NAME], check=True)

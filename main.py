import logging
import boids.utils.config as consts
from boids.core.camera import Camera
from boids.core.engine import BoidsEngine
from boids.core.state import BoidState

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

print("Boids Simulation:\n")
print("-----------------------------------------\n")
print(f"Number of boids : {consts.N_BOIDS}\n")
print(f"Number of steps : {consts.N_STEPS}\n")
print(f"Neighbor search : {consts.STRATEGY}\n")
print("------------------------------------------\n\n")
print("Initialization of the flock...\n")

simulation_state = BoidState(consts.N_BOIDS, consts)
simulation_state.initialize(consts.SEED_FRAME)

camera = Camera(consts.N_STEPS, consts.RES, consts) if consts.RENDER else None
engine = BoidsEngine(consts, simulation_state, camera)

engine.run()

print("Simulation done!\n\n")

if camera is not None:
    print("Writing frames to disk & making video (This may take a while)...\n")
    engine.save()
    print("Video done.")

engine.shutdown()

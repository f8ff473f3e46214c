from MetaBlobs.ball import Ball
from MetaBlobs.camera import Camera
from MetaBlobs.field import MetaballField
from MetaBlobs.plotting import MatplotlibRenderer
from MetaBlobs.scene import Scene
import matplotlib.pyplot as plt

field = MetaballField([Ball([-20, 0, 0], 15.0), Ball([12, 5, 0], 12.0)])
field.plot_slice(xlim=(-40, 40), ylim=(-40, 40), iso_value=0.1)


scene = Scene({"resolution": 32, "num_balls": 12, "seed": 0})
scene.populate()
camera = Camera(aspect_ratio=4 / 3)
renderer = MatplotlibRenderer()

for frame in range(60):
    n_triangles = scene.tick(1 / 60)
    camera.apply_input(dyaw=0.02)

scene.draw(renderer, camera)
print(f"{len(scene.balls)} balls, {n_triangles} triangles")
plt.show()

from .simulate_dataset import SimConfig, assign_doses, draw_parameters, simulate_dataset, write_dataset

from .closed_form import is_fixed_point, no_infection_solution

from collections import namedtuple

################### params ###################
param_cascade_num=10
param_tree_num=500
param_tree_depth=5
param_pixel_num=400
param_split_test_num=20
# decay per unit of the normalized [-1, 1] rect frame, about 0.1 per pixel for a 200 px face
param_exponential_lambda=10.
param_learning_rate=0.08
# nodes holding fewer samples than this become leaves
param_min_samples_split=2

# training sample synthesis
param_init_num=20
param_validate_fraction=0.1
param_bootstrap='random'
param_combine_num=3

# worker threads used for pixel intensity extraction
param_n_jobs=1

# cv2.remap cannot address maps wider than SHRT_MAX
MAX_PIXEL_NUM=32767

AlgorithmParameters=namedtuple('AlgorithmParameters', [
    'cascade_num',
    'tree_num',
    'tree_depth',
    'pixel_num',
    'split_test_num',
    'exponential_lambda',
    'learning_rate',
    'min_samples_split',
], defaults=(
    param_cascade_num,
    param_tree_num,
    param_tree_depth,
    param_pixel_num,
    param_split_test_num,
    param_exponential_lambda,
    param_learning_rate,
    param_min_samples_split,
))


def CheckParameters(params):
    for name in ['cascade_num', 'tree_num', 'tree_depth', 'pixel_num', 'split_test_num', 'min_samples_split']:
        value=getattr(params, name)
        if int(value)!=value or value<1:
            raise ValueError('%s must be a positive integer, got %r' % (name, value))
    if params.pixel_num>MAX_PIXEL_NUM:
        raise ValueError('pixel_num must not exceed %d, got %d' % (MAX_PIXEL_NUM, params.pixel_num))
    if not params.learning_rate>0:
        raise ValueError('learning_rate must be positive, got %r' % params.learning_rate)
    if not params.exponential_lambda>=0:
        raise ValueError('exponential_lambda must be non-negative, got %r' % params.exponential_lambda)
    return params

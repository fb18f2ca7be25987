from collections import namedtuple
import pickle
import time

import numpy as np
from sklearn.utils import check_random_state

from ShapeSpace import AsShape, MeanShape, RectTransform, Shape2Relative, Shape2Absolute
from TrainingData import Samples, AsImage, LoadDatabase, NormalizeShapes, CreateTrainingSamples, PartitionSamples
from PixelFeatures import SamplePixelCoordinates, PairPrior, ShapeTransforms, ExtractIntensities
from RegressionTree import Tree, FitTree, PredictTree
from Params import AlgorithmParameters, CheckParameters
import Params

# landmarks and offsets locate the stage's pixel pool relative to the mean shape
Stage=namedtuple('Stage', ['landmarks', 'offsets', 'trees'])
# history holds (train error, validation error or None) per stage
Cascade=namedtuple('Cascade', ['mean_shape', 'stages', 'history'])

def RectMatrices(rects):
    return np.array([RectTransform(rect).params for rect in rects])

# compute regression target in the frame of the mean shape
def ComputeResiduals(gt_shapes, estimates, linears):
    return np.einsum('mij,mnj->mni', np.linalg.inv(linears), gt_shapes-estimates)

# map corrections from the mean shape frame back onto the estimates
def ApplyCorrections(estimates, corrections, linears):
    return estimates+np.einsum('mij,mnj->mni', linears, corrections)

########################## error ###################################
# mean landmark error, optionally normalized by inter-pupil distance (68 landmarks)
def ComputeError(shapes, gts, normalize=None):
    shapes=np.asarray(shapes, dtype=np.float64)
    gts=np.asarray(gts, dtype=np.float64)
    if len(shapes)==0:
        return 0.
    err=np.mean(np.sqrt(np.sum(np.square(shapes-gts), 2)), 1)
    if normalize=='pupil':
        if gts.shape[1]!=68:
            raise ValueError('pupil normalization needs 68 landmarks, got %d' % gts.shape[1])
        pupil_dist=np.sqrt(np.sum(np.square(np.mean(gts[:, 42:48]-gts[:, 36:42], 1)), 1))
        err=err/pupil_dist
    elif normalize is not None:
        raise ValueError('unknown error normalization %r' % normalize)
    return float(np.mean(err))

########################### training phase ###########################
# fit one stage, each tree on the residual left by the previous ones, then update estimates in place
def TrainStage(images, rect_mats, rshapes, samples, mean_shape, params, rng, n_jobs=Params.param_n_jobs, verbose=True):
    coords, landmarks, offsets=SamplePixelCoordinates(mean_shape, params.pixel_num, rng)
    pair_prior=PairPrior(coords, params.exponential_lambda)
    linears=ShapeTransforms(mean_shape, samples.estimates)
    residuals=ComputeResiduals(rshapes[samples.idx], samples.estimates, linears)
    intensities=ExtractIntensities(images, rect_mats, samples, linears, landmarks, offsets, n_jobs)
    assert len(residuals)==len(intensities)==len(samples.idx)

    corrections=np.zeros_like(residuals)
    trees=[]
    for i in range(params.tree_num):
        tree=FitTree(intensities, residuals, pair_prior, params, rng)
        update=PredictTree(tree, intensities)
        residuals-=update
        corrections+=update
        trees.append(tree)
        if verbose and (i+1)%50==0:
            print('Trees:', i+1, 'out of', params.tree_num)

    samples.estimates[:]=ApplyCorrections(samples.estimates, corrections, linears)
    return Stage(landmarks, offsets, trees)

# train the whole cascade, the same seed gives the same cascade
def TrainCascade(database, params=None, seed=None,
                 init_num=Params.param_init_num,
                 strategy=Params.param_bootstrap,
                 validate_fraction=Params.param_validate_fraction,
                 include_mean_shape=False,
                 n_jobs=Params.param_n_jobs,
                 verbose=True):
    params=CheckParameters(params if params is not None else AlgorithmParameters())
    database=LoadDatabase(database.images, database.shapes, database.rects)
    rng=check_random_state(seed)

    rshapes=NormalizeShapes(database.shapes, database.rects)
    mean_shape=MeanShape(rshapes)
    rect_mats=RectMatrices(database.rects)
    samples=CreateTrainingSamples(rshapes, rng, strategy, init_num, mean_shape if include_mean_shape else None)
    train, validate=PartitionSamples(samples, rng, validate_fraction)
    if verbose:
        print('Train samples:', len(train.idx), 'Validation samples:', len(validate.idx))
        print('Initial Error:', ComputeError(train.estimates, rshapes[train.idx]))

    stages=[]
    history=[]
    for i in range(params.cascade_num):
        t1=time.time()
        if verbose:
            print('Cascade stage:', i+1)
        stage=TrainStage(database.images, rect_mats, rshapes, train, mean_shape, params, rng, n_jobs, verbose)
        stages.append(stage)

        train_error=ComputeError(train.estimates, rshapes[train.idx])
        validate_error=None
        if len(validate.idx)>0:
            validate.estimates[:]=ApplyStage(stage, database.images, rect_mats, validate, mean_shape, n_jobs)
            validate_error=ComputeError(validate.estimates, rshapes[validate.idx])
        history.append((train_error, validate_error))
        if verbose:
            print('Stage', i+1, 'Error:', train_error, 'Validation Error:', validate_error, 'use:', time.time()-t1, 's')
    return Cascade(mean_shape, stages, history)

######################### test phase ##############################
# replay one stage, returns the updated estimates
def ApplyStage(stage, images, rect_mats, samples, mean_shape, n_jobs=Params.param_n_jobs):
    linears=ShapeTransforms(mean_shape, samples.estimates)
    intensities=ExtractIntensities(images, rect_mats, samples, linears, stage.landmarks, stage.offsets, n_jobs)
    corrections=np.zeros_like(samples.estimates)
    for tree in stage.trees:
        corrections+=PredictTree(tree, intensities)
    return ApplyCorrections(samples.estimates, corrections, linears)

# align a shape inside rect, starting from the mean shape unless initial_shape is given
def ApplyCascade(cascade, image, rect, initial_shape=None):
    img=AsImage(image)
    rect=np.asarray(rect, dtype=np.float64).reshape(4, 2)
    if initial_shape is None:
        estimate=cascade.mean_shape.copy()
    else:
        estimate=Shape2Relative(AsShape(initial_shape), rect)
        if estimate.shape!=cascade.mean_shape.shape:
            raise ValueError('initial shape has %d landmarks, cascade expects %d' % (len(estimate), len(cascade.mean_shape)))
    samples=Samples(np.zeros(1, dtype=np.int64), estimate[None])
    rect_mats=RectTransform(rect).params[None]
    for stage in cascade.stages:
        samples=Samples(samples.idx, ApplyStage(stage, [img], rect_mats, samples, cascade.mean_shape, 1))
    return Shape2Absolute(samples.estimates[0], rect)

######################### model ##################################
# save trained cascade as plain dicts of arrays
def SaveCascade(cascade, filename):
    model={
        'mean_shape': cascade.mean_shape,
        'history': list(cascade.history),
        'stages': [{
            'landmarks': stage.landmarks,
            'offsets': stage.offsets,
            'trees': [tree._asdict() for tree in stage.trees],
        } for stage in cascade.stages],
    }
    with open(filename, 'wb') as f:
        pickle.dump(model, f, protocol=pickle.HIGHEST_PROTOCOL)

# load cascade for test
def LoadCascade(filename):
    with open(filename, 'rb') as f:
        model=pickle.load(f)
    stages=[Stage(stage['landmarks'], stage['offsets'], [Tree(**tree) for tree in stage['trees']])
            for stage in model['stages']]
    return Cascade(model['mean_shape'], stages, model['history'])
